"""FlowChord exception hierarchy.

All exceptions inherit from FlowChordError for easy catching.
Each exception includes a `retryable` flag to indicate if the operation can be retried.
"""

from __future__ import annotations


class FlowChordError(Exception):
    """Base exception for all FlowChord errors."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


# Validation Errors
class ValidationError(FlowChordError):
    """Workflow or node definition is invalid. The run never starts."""

    def __init__(self, message: str, *, node_id: str | None = None) -> None:
        super().__init__(message, retryable=False)
        self.node_id = node_id


class InvalidNodeTypeError(ValidationError):
    """Node declares a type with no registered adapter."""

    def __init__(self, node_id: str, node_type: object) -> None:
        super().__init__(
            f"Node '{node_id}' has invalid type '{node_type}'",
            node_id=node_id,
        )
        self.node_type = node_type


class MissingConfigError(ValidationError):
    """Node config is missing a required key."""

    def __init__(self, node_id: str | None, node_type: str, key: str) -> None:
        target = f"Node '{node_id}'" if node_id else f"Node type '{node_type}'"
        super().__init__(
            f"{target} is missing required config '{key}'",
            node_id=node_id,
        )
        self.node_type = node_type
        self.key = key


class EmptyWorkflowError(ValidationError):
    """Workflow has no nodes defined."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow '{workflow_id}' has no nodes. Add nodes before running.")
        self.workflow_id = workflow_id


# Graph Errors
class GraphError(FlowChordError):
    """Base class for structural graph errors. The run never starts."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class CycleDetectedError(GraphError):
    """Connections contain a directed cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Workflow contains a cycle: {' -> '.join(cycle)}")
        self.cycle = cycle


class DanglingEdgeError(GraphError):
    """A connection targets a node outside the workflow."""

    def __init__(self, source: str, target: str, edge_id: str | None = None) -> None:
        super().__init__(
            f"Connection {edge_id or '<unnamed>'} from '{source}' targets unknown node '{target}'"
        )
        self.source = source
        self.target = target
        self.edge_id = edge_id


# Adapter Errors
class AdapterError(FlowChordError):
    """Base class for provider adapter failures."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.provider = provider
        self.status_code = status_code


class AuthError(AdapterError):
    """Credentials rejected. Cannot be retried without fixing the node config."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
        super().__init__(message, provider=provider, retryable=False, status_code=status_code)


class TransientError(AdapterError):
    """Temporary failure. Consumes one retry attempt."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider=provider, retryable=True, status_code=status_code)
        self.retry_after = retry_after


class PermanentError(AdapterError):
    """Failure that will not go away by retrying."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
        super().__init__(message, provider=provider, retryable=False, status_code=status_code)


class NodeTimeoutError(FlowChordError):
    """Node invocation exceeded the workflow timeout. Treated as transient."""

    def __init__(self, node_id: str | None, timeout_seconds: float) -> None:
        target = f"Node '{node_id}'" if node_id else "Invocation"
        super().__init__(f"{target} timed out after {timeout_seconds}s", retryable=True)
        self.node_id = node_id
        self.timeout_seconds = timeout_seconds


# Boundary Errors
class WorkflowNotFoundError(FlowChordError):
    """Workflow missing or not owned by the caller."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow '{workflow_id}' not found", retryable=False)
        self.workflow_id = workflow_id


class ExecutionNotFoundError(FlowChordError):
    """Execution missing or not owned by the caller."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution '{execution_id}' not found", retryable=False)
        self.execution_id = execution_id


class UnauthorizedError(FlowChordError):
    """Caller identity is missing."""

    def __init__(self, message: str = "unauthorized") -> None:
        super().__init__(message, retryable=False)
