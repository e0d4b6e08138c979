"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import pytest

from flowchord.adapters.base import AdapterRegistry, BaseAdapter, InvocationContext
from flowchord.adapters.condition import ConditionAdapter
from flowchord.adapters.delay import DelayAdapter
from flowchord.adapters.trigger import TriggerAdapter
from flowchord.config import Settings
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.recorder import InMemoryExecutionRecorder
from flowchord.core.types import NodeSpec, NodeType, WorkflowSpec
from flowchord.errors.exceptions import AuthError, PermanentError, TransientError


SCRIPTED_FAILURES = {
    "transient": TransientError,
    "permanent": PermanentError,
    "auth": AuthError,
}


class ScriptedAdapter(BaseAdapter):
    """Adapter whose behaviour is driven by the node config.

    Config keys:
        sleep: seconds to wait inside every attempt
        fail: "transient" | "permanent" | "auth" | "crash"
        fail_times: number of attempts that fail before succeeding
        output: value returned on success (defaults to an echo)
    """

    def __init__(self, node_type: NodeType, timeline: list[tuple[str, str, float]]) -> None:
        self.node_type = node_type
        self.timeline = timeline
        self.calls: list[dict[str, Any]] = []
        self._attempts: dict[tuple[str, str], int] = {}

    async def invoke(
        self,
        config: Mapping[str, Any],
        payload: Any,
        context: InvocationContext,
    ) -> Any:
        loop = asyncio.get_running_loop()
        key = (context.execution_id, context.node_id)
        self._attempts[key] = self._attempts.get(key, 0) + 1
        count = self._attempts[key]
        self.calls.append({
            "node_id": context.node_id,
            "attempt": context.attempt,
            "payload": payload,
        })
        self.timeline.append(("start", context.node_id, loop.time()))
        try:
            if config.get("sleep"):
                await asyncio.sleep(config["sleep"])

            fail = config.get("fail")
            if fail and count <= config.get("fail_times", 1_000):
                if fail == "crash":
                    raise RuntimeError("scripted crash")
                raise SCRIPTED_FAILURES[fail](f"scripted {fail} failure", provider=self.provider_name)

            if "output" in config:
                return config["output"]
            return {"node": context.node_id, "input": payload}
        finally:
            self.timeline.append(("end", context.node_id, loop.time()))

    def intervals(self, node_id: str) -> list[tuple[float, float]]:
        starts = [t for kind, n, t in self.timeline if kind == "start" and n == node_id]
        ends = [t for kind, n, t in self.timeline if kind == "end" and n == node_id]
        return list(zip(starts, ends))


def node(node_id: str, node_type: str, *targets: str, **config: Any) -> dict[str, Any]:
    """Node dict in storage shape: connections live on the source node."""
    return {
        "id": node_id,
        "type": node_type,
        "config": config,
        "connections": [{"targetNodeId": t} for t in targets],
    }


def make_workflow(*nodes: dict[str, Any], **policy: Any) -> WorkflowSpec:
    data: dict[str, Any] = {
        "id": policy.pop("id", "wf-1"),
        "owner_id": policy.pop("owner_id", "user-1"),
        "name": policy.pop("name", "Test workflow"),
        "nodes": list(nodes),
    }
    data.update(policy)
    return WorkflowSpec.model_validate(data)


@pytest.fixture
def settings() -> Settings:
    """Settings with immediate retries."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        retry_base_delay=0.0,
        retry_jitter=False,
        max_workflow_nodes=100,
        smtp_host="smtp.test.local",
    )


@pytest.fixture
def timeline() -> list[tuple[str, str, float]]:
    return []


@pytest.fixture
def scripted(timeline) -> dict[NodeType, ScriptedAdapter]:
    """Scripted stand-ins for the provider node types."""
    return {
        node_type: ScriptedAdapter(node_type, timeline)
        for node_type in (
            NodeType.EMAIL,
            NodeType.DISCORD,
            NodeType.GEMINI,
            NodeType.OPENAI,
            NodeType.OPENROUTER,
        )
    }


@pytest.fixture
def registry(scripted) -> AdapterRegistry:
    """Real trigger/condition/delay adapters, scripted providers."""
    registry = AdapterRegistry()
    registry.register(TriggerAdapter())
    registry.register(ConditionAdapter())
    registry.register(DelayAdapter())
    for adapter in scripted.values():
        registry.register(adapter)
    return registry


@pytest.fixture
def recorder() -> InMemoryExecutionRecorder:
    return InMemoryExecutionRecorder()


@pytest.fixture
def executor(registry, recorder, settings) -> WorkflowExecutor:
    return WorkflowExecutor(registry, recorder, settings=settings)


@pytest.fixture
def workflow_factory():
    """Factory building a WorkflowSpec from node dicts and policy keywords."""
    return make_workflow


@pytest.fixture
def node_factory():
    return node
