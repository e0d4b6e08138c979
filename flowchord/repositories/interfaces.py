"""Repository interfaces."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional
from flowchord.models.execution import NodeExecution, WorkflowExecution
from flowchord.models.workflow import Node, Workflow


class IWorkflowRepository(ABC):
    """Workflow repository interface."""

    @abstractmethod
    async def create(
        self,
        workflow: Workflow,
    ) -> Workflow:
        """Create workflow."""
        pass

    @abstractmethod
    async def get_by_id(
        self,
        workflow_id: str,
    ) -> Optional[Workflow]:
        """Get workflow by ID."""
        pass

    @abstractmethod
    async def get_for_owner(
        self,
        workflow_id: str,
        owner_id: str,
    ) -> Optional[Workflow]:
        """Get workflow by ID if owned by the given user."""
        pass

    @abstractmethod
    async def add_node(
        self,
        node: Node,
    ) -> Node:
        """Add node to its workflow."""
        pass

    @abstractmethod
    async def list_nodes(
        self,
        workflow_id: str,
    ) -> List[Node]:
        """List workflow nodes in insertion order."""
        pass

    @abstractmethod
    async def record_run_started(
        self,
        workflow_id: str,
        started_at: datetime,
    ) -> None:
        """Atomically increment total runs and set last run."""
        pass

    @abstractmethod
    async def increment_outcome(
        self,
        workflow_id: str,
        succeeded: bool,
    ) -> None:
        """Atomically increment successful or failed runs."""
        pass


class IExecutionRepository(ABC):
    """Execution repository interface."""

    @abstractmethod
    async def create(
        self,
        execution: WorkflowExecution,
    ) -> WorkflowExecution:
        """Create execution."""
        pass

    @abstractmethod
    async def get_by_id(
        self,
        execution_id: str,
    ) -> Optional[WorkflowExecution]:
        """Get execution by ID."""
        pass

    @abstractmethod
    async def get_for_owner(
        self,
        execution_id: str,
        owner_id: str,
    ) -> Optional[WorkflowExecution]:
        """Get execution by ID if its workflow is owned by the given user."""
        pass

    @abstractmethod
    async def list_by_workflow(
        self,
        workflow_id: str,
        limit: int = 50,
    ) -> List[WorkflowExecution]:
        """List executions by workflow, newest first."""
        pass

    @abstractmethod
    async def finish(
        self,
        execution_id: str,
        status: str,
        error: Optional[str],
        completed_at: datetime,
    ) -> bool:
        """Set terminal status once. Returns False if already terminal."""
        pass

    @abstractmethod
    async def create_node_execution(
        self,
        node_execution: NodeExecution,
    ) -> NodeExecution:
        """Create node execution."""
        pass

    @abstractmethod
    async def update_node_execution(
        self,
        node_execution_id: str,
        values: dict[str, Any],
    ) -> bool:
        """Apply a status transition. Returns False if already terminal."""
        pass

    @abstractmethod
    async def list_node_executions(
        self,
        execution_id: str,
    ) -> List[NodeExecution]:
        """List node executions of a run."""
        pass
