"""SQL-backed execution recorder.

Every recorder call runs in its own session and transaction, so a call
issued by one node never waits on another node's unit of work.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowchord import models
from flowchord.core.recorder import ExecutionRecorder
from flowchord.core.types import ExecutionStatus, NodeExecution, WorkflowExecution
from flowchord.repositories.execution_repo import ExecutionRepository
from flowchord.repositories.workflow_repo import WorkflowRepository

logger = logging.getLogger(__name__)


def dump_json(value: Any) -> str | None:
    """Serialize a payload for a Text column."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def load_json(value: str | None) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return value


class SQLExecutionRecorder(ExecutionRecorder):
    """Execution recorder writing through the repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_workflow_execution(self, execution: WorkflowExecution) -> None:
        """Run row and totalRuns/lastRun commit in one transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                await ExecutionRepository(session).create(
                    models.WorkflowExecution(
                        id=execution.id,
                        workflow_id=execution.workflow_id,
                        status=execution.status.value,
                        trigger_type=execution.trigger_type,
                        started_at=execution.started_at,
                    )
                )
                await WorkflowRepository(session).record_run_started(
                    execution.workflow_id, execution.started_at
                )

    async def create_node_execution(self, node_execution: NodeExecution) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await ExecutionRepository(session).create_node_execution(
                    models.NodeExecution(
                        id=node_execution.id,
                        execution_id=node_execution.execution_id,
                        node_id=node_execution.node_id,
                        node_type=node_execution.node_type,
                        status=node_execution.status.value,
                        input=dump_json(node_execution.input),
                        attempts=node_execution.attempts,
                        created_at=node_execution.created_at,
                    )
                )

    async def update_node_execution(self, node_execution: NodeExecution) -> None:
        values = {
            "status": node_execution.status.value,
            "input": dump_json(node_execution.input),
            "output": dump_json(node_execution.output),
            "error": node_execution.error,
            "attempts": node_execution.attempts,
            "started_at": node_execution.started_at,
            "completed_at": node_execution.completed_at,
            "duration_ms": node_execution.duration_ms,
        }
        async with self._session_factory() as session:
            async with session.begin():
                applied = await ExecutionRepository(session).update_node_execution(
                    node_execution.id, values
                )
        if not applied:
            logger.warning(
                "Node execution %s already terminal, ignored transition to %s",
                node_execution.id, node_execution.status.value,
            )

    async def finish_workflow_execution(self, execution: WorkflowExecution) -> None:
        """Terminal status and outcome counter commit in one transaction."""
        completed_at = execution.completed_at or execution.started_at
        async with self._session_factory() as session:
            async with session.begin():
                finished = await ExecutionRepository(session).finish(
                    execution.id,
                    execution.status.value,
                    execution.error,
                    completed_at,
                )
                if finished:
                    await WorkflowRepository(session).increment_outcome(
                        execution.workflow_id,
                        succeeded=execution.status is ExecutionStatus.COMPLETED,
                    )
        if not finished:
            logger.warning("Execution %s was already finished", execution.id)
