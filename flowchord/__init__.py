"""FlowChord - Workflow Execution Engine.

FlowChord runs workflows built from typed nodes (LLM providers,
notifications, conditions, delays, triggers) connected into a directed
acyclic graph, with per-workflow retry, timeout and concurrency policy
and a recorded execution history.

Example:
    >>> from flowchord import WorkflowExecutor, WorkflowSpec, create_default_registry
    >>> from flowchord import InMemoryExecutionRecorder
    >>> executor = WorkflowExecutor(create_default_registry(), InMemoryExecutionRecorder())
    >>> execution = await executor.execute(WorkflowSpec.model_validate(data))
    >>> print(execution.status)
"""

__version__ = "0.1.0"

# Configuration
from flowchord.config import Settings, get_settings

# Core exports
from flowchord.core.types import (
    Connection,
    ExecutionStatus,
    NodeExecution,
    NodeExecutionStatus,
    NodeSpec,
    NodeType,
    TriggerType,
    WorkflowExecution,
    WorkflowSpec,
    WorkflowStatus,
)
from flowchord.core.graph import ExecutionGraph, build_graph
from flowchord.core.recorder import (
    ExecutionRecorder,
    InMemoryExecutionRecorder,
    RecordDispatcher,
)
from flowchord.core.background_executor import BackgroundExecutionManager
from flowchord.adapters.base import (
    AdapterRegistry,
    BaseAdapter,
    InvocationContext,
    create_default_registry,
)
from flowchord.core.executor import WorkflowExecutor

# Error exports
from flowchord.errors.exceptions import (
    AdapterError,
    AuthError,
    CycleDetectedError,
    DanglingEdgeError,
    EmptyWorkflowError,
    ExecutionNotFoundError,
    FlowChordError,
    GraphError,
    InvalidNodeTypeError,
    MissingConfigError,
    NodeTimeoutError,
    PermanentError,
    TransientError,
    UnauthorizedError,
    ValidationError,
    WorkflowNotFoundError,
)

# Resilience exports
from flowchord.resilience import RetryPolicy, RetryStrategy, TimeoutManager

# Logging
from flowchord.logging import setup_logging

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    "setup_logging",
    # Core
    "Connection",
    "ExecutionStatus",
    "NodeExecution",
    "NodeExecutionStatus",
    "NodeSpec",
    "NodeType",
    "TriggerType",
    "WorkflowExecution",
    "WorkflowSpec",
    "WorkflowStatus",
    "ExecutionGraph",
    "build_graph",
    "ExecutionRecorder",
    "InMemoryExecutionRecorder",
    "RecordDispatcher",
    "BackgroundExecutionManager",
    "WorkflowExecutor",
    # Adapters
    "AdapterRegistry",
    "BaseAdapter",
    "InvocationContext",
    "create_default_registry",
    # Errors
    "AdapterError",
    "AuthError",
    "CycleDetectedError",
    "DanglingEdgeError",
    "EmptyWorkflowError",
    "ExecutionNotFoundError",
    "FlowChordError",
    "GraphError",
    "InvalidNodeTypeError",
    "MissingConfigError",
    "NodeTimeoutError",
    "PermanentError",
    "TransientError",
    "UnauthorizedError",
    "ValidationError",
    "WorkflowNotFoundError",
    # Resilience
    "RetryPolicy",
    "RetryStrategy",
    "TimeoutManager",
]
