"""Workflow repository implementation."""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from flowchord.models.workflow import Node, Workflow
from flowchord.repositories.interfaces import IWorkflowRepository


class WorkflowRepository(IWorkflowRepository):
    """Workflow repository."""

    def __init__(self, session: AsyncSession):
        """Initialize repository.

        Args:
            session: Database session
        """
        self.session = session

    async def create(
        self,
        workflow: Workflow,
    ) -> Workflow:
        """Create workflow.

        Args:
            workflow: Workflow entity

        Returns:
            Created workflow
        """
        self.session.add(workflow)
        await self.session.flush()
        return workflow

    async def get_by_id(
        self,
        workflow_id: str,
    ) -> Optional[Workflow]:
        """Get workflow by ID.

        Args:
            workflow_id: Workflow ID

        Returns:
            Workflow or None
        """
        stmt = select(Workflow).where(
            Workflow.id == workflow_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_owner(
        self,
        workflow_id: str,
        owner_id: str,
    ) -> Optional[Workflow]:
        """Get workflow by ID scoped to its owner.

        Args:
            workflow_id: Workflow ID
            owner_id: Requesting user ID

        Returns:
            Workflow or None (missing or owned by someone else)
        """
        stmt = select(Workflow).where(
            Workflow.id == workflow_id,
            Workflow.owner_id == owner_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_node(
        self,
        node: Node,
    ) -> Node:
        """Add node after the workflow's existing nodes.

        Args:
            node: Node entity

        Returns:
            Created node
        """
        stmt = select(func.count()).select_from(Node).where(
            Node.workflow_id == node.workflow_id
        )
        node.sort_order = (await self.session.execute(stmt)).scalar_one()
        self.session.add(node)
        await self.session.flush()
        return node

    async def list_nodes(
        self,
        workflow_id: str,
    ) -> List[Node]:
        """List workflow nodes in insertion order.

        Args:
            workflow_id: Workflow ID

        Returns:
            List of nodes
        """
        stmt = select(Node).where(
            Node.workflow_id == workflow_id
        ).order_by(
            Node.sort_order, Node.created_at
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def record_run_started(
        self,
        workflow_id: str,
        started_at: datetime,
    ) -> None:
        """Increment total runs in a single UPDATE statement."""
        stmt = update(Workflow).where(
            Workflow.id == workflow_id
        ).values(
            total_runs=Workflow.total_runs + 1,
            last_run=started_at,
        )
        await self.session.execute(stmt)

    async def increment_outcome(
        self,
        workflow_id: str,
        succeeded: bool,
    ) -> None:
        """Increment successful or failed runs in a single UPDATE statement."""
        column = "successful_runs" if succeeded else "failed_runs"
        stmt = update(Workflow).where(
            Workflow.id == workflow_id
        ).values(
            {column: getattr(Workflow, column) + 1}
        )
        await self.session.execute(stmt)
