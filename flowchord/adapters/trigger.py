"""Trigger node: entry point of a run."""

from __future__ import annotations

from typing import Any, Mapping

from flowchord.adapters.base import BaseAdapter, InvocationContext
from flowchord.core.types import NodeType


class TriggerAdapter(BaseAdapter):
    """Emits the run's initial payload.

    The payload supplied when the run was started wins; otherwise a static
    ``payload`` from the node config is used. A trigger never fails.
    """

    node_type = NodeType.TRIGGER

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> Any:
        if payload is not None:
            return payload
        return config.get("payload")
