"""Service layer."""
from flowchord.services.execution_recorder import SQLExecutionRecorder
from flowchord.services.execution_service import ExecutionService

__all__ = [
    "ExecutionService",
    "SQLExecutionRecorder",
]
