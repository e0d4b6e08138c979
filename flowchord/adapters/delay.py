"""Delay node."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from flowchord.adapters.base import BaseAdapter, InvocationContext
from flowchord.core.types import NodeType
from flowchord.errors.exceptions import MissingConfigError, ValidationError


class DelayAdapter(BaseAdapter):
    """Waits ``config["duration_ms"]`` then forwards its input unchanged.

    The wait counts against the workflow timeout like any other invocation.
    """

    node_type = NodeType.DELAY
    required_config = ("duration_ms",)

    def validate_config(self, config: Mapping[str, Any], node_id: str | None = None) -> None:
        if config.get("duration_ms") is None:
            raise MissingConfigError(node_id, self.node_type.value, "duration_ms")
        self._duration_seconds(config, node_id)

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> Any:
        await asyncio.sleep(self._duration_seconds(config, context.node_id))
        return payload

    def _duration_seconds(self, config: Mapping[str, Any], node_id: str | None) -> float:
        value = config.get("duration_ms")
        if isinstance(value, bool):
            raise ValidationError(f"Node '{node_id}' duration_ms must be a number", node_id=node_id)
        try:
            duration_ms = float(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Node '{node_id}' duration_ms must be a number", node_id=node_id
            ) from None
        if duration_ms < 0:
            raise ValidationError(
                f"Node '{node_id}' duration_ms must be non-negative", node_id=node_id
            )
        return duration_ms / 1000.0
