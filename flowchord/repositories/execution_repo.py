"""Execution repository implementation."""
from datetime import datetime
from typing import Any, List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from flowchord.models.execution import NodeExecution, WorkflowExecution
from flowchord.models.workflow import Workflow
from flowchord.repositories.interfaces import IExecutionRepository

TERMINAL_NODE_STATUSES = ("completed", "failed", "skipped")


class ExecutionRepository(IExecutionRepository):
    """Execution repository."""

    def __init__(self, session: AsyncSession):
        """Initialize repository.

        Args:
            session: Database session
        """
        self.session = session

    async def create(
        self,
        execution: WorkflowExecution,
    ) -> WorkflowExecution:
        """Create execution.

        Args:
            execution: Execution entity

        Returns:
            Created execution
        """
        self.session.add(execution)
        await self.session.flush()
        return execution

    async def get_by_id(
        self,
        execution_id: str,
    ) -> Optional[WorkflowExecution]:
        """Get execution by ID.

        Args:
            execution_id: Execution ID

        Returns:
            Execution or None
        """
        stmt = select(WorkflowExecution).where(
            WorkflowExecution.id == execution_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_owner(
        self,
        execution_id: str,
        owner_id: str,
    ) -> Optional[WorkflowExecution]:
        """Get execution by ID if its workflow belongs to owner_id."""
        stmt = select(WorkflowExecution).join(
            Workflow, Workflow.id == WorkflowExecution.workflow_id
        ).where(
            WorkflowExecution.id == execution_id,
            Workflow.owner_id == owner_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_workflow(
        self,
        workflow_id: str,
        limit: int = 50,
    ) -> List[WorkflowExecution]:
        """List executions by workflow.

        Args:
            workflow_id: Workflow ID
            limit: Maximum number of executions

        Returns:
            List of executions, newest first
        """
        stmt = select(WorkflowExecution).where(
            WorkflowExecution.workflow_id == workflow_id
        ).order_by(
            WorkflowExecution.started_at.desc()
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def finish(
        self,
        execution_id: str,
        status: str,
        error: Optional[str],
        completed_at: datetime,
    ) -> bool:
        """Move a running execution to its terminal status.

        The WHERE clause makes the transition happen at most once.

        Returns:
            True if this call performed the transition
        """
        execution = await self.get_by_id(execution_id)
        if execution is None:
            return False
        duration_ms = int((completed_at - execution.started_at).total_seconds() * 1000)

        stmt = update(WorkflowExecution).where(
            WorkflowExecution.id == execution_id,
            WorkflowExecution.status == "running",
        ).values(
            status=status,
            error=error,
            completed_at=completed_at,
            duration_ms=duration_ms,
        ).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def create_node_execution(
        self,
        node_execution: NodeExecution,
    ) -> NodeExecution:
        """Create node execution."""
        self.session.add(node_execution)
        await self.session.flush()
        return node_execution

    async def update_node_execution(
        self,
        node_execution_id: str,
        values: dict[str, Any],
    ) -> bool:
        """Apply a status transition unless the node execution is already terminal."""
        stmt = update(NodeExecution).where(
            NodeExecution.id == node_execution_id,
            NodeExecution.status.not_in(TERMINAL_NODE_STATUSES),
        ).values(**values).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def list_node_executions(
        self,
        execution_id: str,
    ) -> List[NodeExecution]:
        """List node executions of a run in creation order."""
        stmt = select(NodeExecution).where(
            NodeExecution.execution_id == execution_id
        ).order_by(
            NodeExecution.created_at
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
