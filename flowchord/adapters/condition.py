"""Condition node with safe expression evaluation."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from simpleeval import EvalWithCompoundTypes

from flowchord.adapters.base import BaseAdapter, InvocationContext
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import MissingConfigError, PermanentError

logger = logging.getLogger(__name__)

SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
}


class ConditionAdapter(BaseAdapter):
    """Evaluates ``config["expression"]`` against the incoming payload.

    The expression sees the payload as ``input``. A false result closes
    the branch: every direct successor of the node is skipped.

    Example:
        >>> {"expression": "input['score'] > 0.5"}
    """

    node_type = NodeType.CONDITION

    def validate_config(self, config: Mapping[str, Any], node_id: str | None = None) -> None:
        expression = self._expression(config)
        if expression is None or (isinstance(expression, str) and not expression.strip()):
            raise MissingConfigError(node_id, self.node_type.value, "expression")

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> dict[str, Any]:
        expression = self._expression(config)

        if isinstance(expression, bool):
            result = expression
        else:
            result = self.evaluate(str(expression), payload, node_id=context.node_id)

        logger.debug("Condition %s evaluated %r -> %s", context.node_id, expression, result)
        return {
            "result": result,
            "expression": expression,
            "payload": payload,
        }

    def evaluate(self, expression: str, payload: Any, node_id: str | None = None) -> bool:
        """Evaluate an expression with only whitelisted names and functions.

        Raises:
            PermanentError: The expression is malformed or fails at runtime.
        """
        safe_names: dict[str, Any] = {
            "input": payload,
            "true": True,
            "false": False,
            "none": None,
            "True": True,
            "False": False,
            "None": None,
        }
        try:
            evaluator = EvalWithCompoundTypes(names=safe_names, functions=SAFE_FUNCTIONS)
            return bool(evaluator.eval(expression))
        except Exception as e:
            raise PermanentError(
                f"Condition evaluation failed for node {node_id}: {e}",
                provider=self.provider_name,
            ) from e

    def opens_branch(self, output: Any) -> bool:
        return bool(output.get("result")) if isinstance(output, Mapping) else bool(output)

    def forward(self, output: Any) -> Any:
        if isinstance(output, Mapping) and "payload" in output:
            return output["payload"]
        return output

    @staticmethod
    def _expression(config: Mapping[str, Any]) -> Any:
        # "condition" is the key used by the canvas editor
        if "expression" in config:
            return config["expression"]
        return config.get("condition")
