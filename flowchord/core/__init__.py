"""Core engine: types, graph building, recording and secret redaction.

The executor lives in ``flowchord.core.executor`` and is imported from
there (it depends on the adapters package, which depends on these types).
"""

from flowchord.core.graph import Edge, ExecutionGraph, build_graph
from flowchord.core.recorder import (
    ExecutionRecorder,
    InMemoryExecutionRecorder,
    RecordDispatcher,
)
from flowchord.core.secrets import redact_secrets
from flowchord.core.types import (
    Connection,
    ExecutionStatus,
    NodeDisplayStatus,
    NodeExecution,
    NodeExecutionStatus,
    NodeSpec,
    NodeType,
    TriggerType,
    WorkflowExecution,
    WorkflowSpec,
    WorkflowStatus,
)

__all__ = [
    # Types
    "Connection",
    "ExecutionStatus",
    "NodeDisplayStatus",
    "NodeExecution",
    "NodeExecutionStatus",
    "NodeSpec",
    "NodeType",
    "TriggerType",
    "WorkflowExecution",
    "WorkflowSpec",
    "WorkflowStatus",
    # Graph
    "Edge",
    "ExecutionGraph",
    "build_graph",
    # Recording
    "ExecutionRecorder",
    "InMemoryExecutionRecorder",
    "RecordDispatcher",
    # Secrets
    "redact_secrets",
]
