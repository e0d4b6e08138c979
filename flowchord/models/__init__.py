"""SQLAlchemy models."""
from flowchord.models.workflow import Node, Workflow
from flowchord.models.execution import NodeExecution, WorkflowExecution

__all__ = [
    "Workflow",
    "Node",
    "WorkflowExecution",
    "NodeExecution",
]
