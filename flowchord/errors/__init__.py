"""Error types for FlowChord."""

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

__all__ = [
    "FlowChordError",
    "ValidationError",
    "InvalidNodeTypeError",
    "MissingConfigError",
    "EmptyWorkflowError",
    "GraphError",
    "CycleDetectedError",
    "DanglingEdgeError",
    "AdapterError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "NodeTimeoutError",
    "WorkflowNotFoundError",
    "ExecutionNotFoundError",
    "UnauthorizedError",
]
