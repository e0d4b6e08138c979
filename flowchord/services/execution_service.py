"""Execution service layer.

Provides the engine's outward operations:
- ExecuteWorkflow: validate, create the run record, dispatch in background
- Retrieve execution history scoped to the owner
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowchord import models
from flowchord.core.background_executor import BackgroundExecutionManager
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.types import (
    ExecutionStatus,
    NodeExecution,
    NodeExecutionStatus,
    NodeSpec,
    NodeType,
    WorkflowExecution,
    WorkflowSpec,
)
from flowchord.errors.exceptions import (
    ExecutionNotFoundError,
    InvalidNodeTypeError,
    UnauthorizedError,
    ValidationError,
    WorkflowNotFoundError,
)
from flowchord.repositories.execution_repo import ExecutionRepository
from flowchord.repositories.workflow_repo import WorkflowRepository
from flowchord.services.execution_recorder import load_json

logger = logging.getLogger(__name__)


class ExecutionService:
    """Service layer for execution operations.

    Provides:
        - Start new executions
        - Retrieve a run with its node executions
        - List a workflow's runs
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        session_factory: async_sessionmaker[AsyncSession],
        bg_manager: BackgroundExecutionManager,
    ) -> None:
        """Initialize service.

        Args:
            executor: Workflow executor (its recorder should write to the same database).
            session_factory: Session factory for workflow reads and history.
            bg_manager: Background execution manager for async dispatch.
        """
        self.executor = executor
        self.session_factory = session_factory
        self.bg_manager = bg_manager

    @staticmethod
    def build_workflow_spec(
        model: models.Workflow,
        nodes: Sequence[models.Node],
    ) -> WorkflowSpec:
        """Convert DB workflow and node rows to the immutable engine snapshot.

        Raises:
            ValidationError: Unknown node type or invalid policy values.
        """
        specs = []
        for node in nodes:
            try:
                node_type = NodeType(node.type)
            except ValueError:
                raise InvalidNodeTypeError(node.id, node.type) from None
            try:
                specs.append(NodeSpec(
                    id=node.id,
                    type=node_type,
                    config=load_json(node.config) or {},
                    connections=load_json(node.connections) or [],
                    name=node.name or None,
                    label=node.label,
                ))
            except pydantic.ValidationError as e:
                raise ValidationError(
                    f"Node '{node.id}' is invalid: {e.errors()[0]['msg']}", node_id=node.id,
                ) from e

        try:
            return WorkflowSpec(
                id=model.id,
                owner_id=model.owner_id,
                name=model.name,
                trigger_type=model.trigger_type,
                trigger_config=load_json(model.trigger_config) or {},
                retry_count=model.retry_count,
                timeout_ms=model.timeout_ms,
                parallel_execution=model.parallel_execution,
                nodes=specs,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Workflow '{model.id}' policy is invalid: {e.errors()[0]['msg']}"
            ) from e

    async def load_workflow(self, workflow_id: str, owner_id: str) -> WorkflowSpec:
        """Read a workflow and its nodes, scoped to the owner."""
        async with self.session_factory() as session:
            repo = WorkflowRepository(session)
            model = await repo.get_for_owner(workflow_id, owner_id)
            if model is None:
                raise WorkflowNotFoundError(workflow_id)
            nodes = await repo.list_nodes(workflow_id)
            return self.build_workflow_spec(model, nodes)

    async def execute_workflow(
        self,
        workflow_id: str,
        owner_id: str | None,
        payload: Any = None,
    ) -> dict[str, str]:
        """Start a run and dispatch it to the background.

        Returns once the WorkflowExecution record exists.

        Raises:
            UnauthorizedError: No caller identity.
            WorkflowNotFoundError: Missing or owned by someone else.
            ValidationError: Invalid node type or config.
            GraphError: Cycle or dangling connection. No record is written.
        """
        if not owner_id:
            raise UnauthorizedError()

        workflow = await self.load_workflow(workflow_id, owner_id)
        execution, graph = await self.executor.start(workflow)

        async def execution_fn() -> WorkflowExecution:
            return await self.executor.run(workflow, execution, graph, payload)

        await self.bg_manager.dispatch(execution_fn, execution.id)
        logger.info("Dispatched execution %s for workflow %s", execution.id, workflow_id)

        return {"executionId": execution.id, "status": "started"}

    async def get_execution(self, execution_id: str, owner_id: str | None) -> WorkflowExecution:
        """Get a run with its node executions.

        Raises:
            UnauthorizedError: No caller identity.
            ExecutionNotFoundError: Missing or not owned by the caller.
        """
        if not owner_id:
            raise UnauthorizedError()

        async with self.session_factory() as session:
            repo = ExecutionRepository(session)
            row = await repo.get_for_owner(execution_id, owner_id)
            if row is None:
                raise ExecutionNotFoundError(execution_id)
            node_rows = await repo.list_node_executions(execution_id)
            return self._to_execution(row, node_rows)

    async def list_executions(
        self,
        workflow_id: str,
        owner_id: str | None,
        limit: int = 50,
    ) -> list[WorkflowExecution]:
        """List a workflow's runs, newest first, without node detail."""
        if not owner_id:
            raise UnauthorizedError()

        async with self.session_factory() as session:
            if await WorkflowRepository(session).get_for_owner(workflow_id, owner_id) is None:
                raise WorkflowNotFoundError(workflow_id)
            rows = await ExecutionRepository(session).list_by_workflow(workflow_id, limit=limit)
            return [self._to_execution(row, []) for row in rows]

    @staticmethod
    def _to_execution(
        row: models.WorkflowExecution,
        node_rows: Sequence[models.NodeExecution],
    ) -> WorkflowExecution:
        return WorkflowExecution(
            id=row.id,
            workflow_id=row.workflow_id,
            status=ExecutionStatus(row.status),
            trigger_type=row.trigger_type,
            error=row.error,
            started_at=row.started_at,
            completed_at=row.completed_at,
            node_executions=[
                NodeExecution(
                    id=n.id,
                    execution_id=n.execution_id,
                    node_id=n.node_id,
                    node_type=n.node_type,
                    status=NodeExecutionStatus(n.status),
                    input=load_json(n.input),
                    output=load_json(n.output),
                    error=n.error,
                    attempts=n.attempts,
                    created_at=n.created_at,
                    started_at=n.started_at,
                    completed_at=n.completed_at,
                )
                for n in node_rows
            ],
        )
