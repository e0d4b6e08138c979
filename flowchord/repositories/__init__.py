"""Repositories."""
from flowchord.repositories.execution_repo import ExecutionRepository
from flowchord.repositories.interfaces import IExecutionRepository, IWorkflowRepository
from flowchord.repositories.workflow_repo import WorkflowRepository

__all__ = [
    "IWorkflowRepository",
    "IExecutionRepository",
    "WorkflowRepository",
    "ExecutionRepository",
]
