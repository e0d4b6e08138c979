"""End-to-end tests: ExecutionService over SQLite."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from flowchord import models
from flowchord.core.types import ExecutionStatus, NodeExecutionStatus
from flowchord.errors.exceptions import (
    CycleDetectedError,
    ExecutionNotFoundError,
    InvalidNodeTypeError,
    UnauthorizedError,
    WorkflowNotFoundError,
)
from flowchord.repositories.execution_repo import ExecutionRepository
from flowchord.repositories.workflow_repo import WorkflowRepository


def node(node_id: str, node_type: str, *targets: str, **config):
    return {
        "id": node_id,
        "type": node_type,
        "config": config,
        "connections": [{"targetNodeId": t} for t in targets],
    }


async def run_to_completion(service, workflow_id: str, owner_id: str = "user-1", payload=None):
    started = await service.execute_workflow(workflow_id, owner_id, payload)
    await service.bg_manager.wait(started["executionId"])
    return await service.get_execution(started["executionId"], owner_id)


async def load_workflow_row(session_factory, workflow_id: str) -> models.Workflow:
    async with session_factory() as session:
        return await WorkflowRepository(session).get_by_id(workflow_id)


class TestExecuteWorkflow:
    """Tests for ExecutionService.execute_workflow."""

    @pytest.mark.asyncio
    async def test_returns_started_and_persists_history(self, service, seed_workflow, session_factory) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email", "C"),
            node("C", "discord"),
        )

        started = await service.execute_workflow(workflow_id, "user-1", {"text": "hello"})

        assert started["status"] == "started"
        await service.bg_manager.wait(started["executionId"])

        execution = await service.get_execution(started["executionId"], "user-1")
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.completed_at is not None
        assert [ne.node_id for ne in execution.node_executions] == ["A", "B", "C"]
        assert all(ne.status == NodeExecutionStatus.COMPLETED for ne in execution.node_executions)
        assert execution.node_executions[0].input == {"text": "hello"}
        assert execution.node_executions[1].output == {"node": "B", "input": {"text": "hello"}}
        assert execution.node_executions[1].attempts == 1

        row = await load_workflow_row(session_factory, workflow_id)
        assert row.total_runs == 1
        assert row.successful_runs == 1
        assert row.failed_runs == 0
        assert row.last_run is not None

    @pytest.mark.asyncio
    async def test_failed_node_fails_run(self, service, seed_workflow, session_factory) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "gemini", fail="permanent"),
        )

        execution = await run_to_completion(service, workflow_id)

        assert execution.status == ExecutionStatus.FAILED
        assert "Node 'B' failed" in execution.error
        assert execution.statuses() == {
            "A": NodeExecutionStatus.COMPLETED,
            "B": NodeExecutionStatus.FAILED,
        }
        row = await load_workflow_row(session_factory, workflow_id)
        assert (row.total_runs, row.successful_runs, row.failed_runs) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_false_condition_skip_is_persisted(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "condition", "C", expression="input['n'] > 10"),
            node("C", "email"),
        )

        execution = await run_to_completion(service, workflow_id, payload={"n": 3})

        assert execution.status == ExecutionStatus.COMPLETED
        skipped = execution.node_executions[-1]
        assert skipped.node_id == "C"
        assert skipped.status == NodeExecutionStatus.SKIPPED
        assert skipped.error == "Condition 'B' evaluated false"

    @pytest.mark.asyncio
    async def test_parallel_run(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B", "C"),
            node("B", "email", "D", sleep=0.02),
            node("C", "discord", "D", sleep=0.02),
            node("D", "openai"),
            parallel_execution=True,
        )

        execution = await run_to_completion(service, workflow_id)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.node_status("D") == NodeExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_policy_is_read_from_workflow(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "openrouter", fail="transient", fail_times=2),
            retry_count=2,
        )

        execution = await run_to_completion(service, workflow_id)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.node_executions[1].attempts == 3

    @pytest.mark.asyncio
    async def test_concurrent_runs_keep_counters_consistent(self, service, seed_workflow, session_factory) -> None:
        """Counter increments from concurrent runs of one workflow are not lost."""
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email", sleep=0.01),
        )

        started = await asyncio.gather(*(
            service.execute_workflow(workflow_id, "user-1") for _ in range(10)
        ))
        for ack in started:
            await service.bg_manager.wait(ack["executionId"])

        row = await load_workflow_row(session_factory, workflow_id)
        assert row.total_runs == 10
        assert row.successful_runs + row.failed_runs == 10
        assert len(await service.list_executions(workflow_id, "user-1")) == 10

    @pytest.mark.asyncio
    async def test_events_are_published(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email"),
        )

        started = await service.execute_workflow(workflow_id, "user-1")
        await service.bg_manager.wait(started["executionId"])

        kinds = [e.event_type for e in service.bg_manager.get_events(started["executionId"])]
        assert kinds[0] == "started"
        assert kinds[-1] == "completed"
        assert "node_completed" in kinds

    @pytest.mark.asyncio
    async def test_secrets_are_not_persisted(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email"),
        )

        execution = await run_to_completion(
            service, workflow_id, payload={"api_key": "sk-abcdefghijklmnopqrstuvwx"},
        )

        assert execution.node_executions[0].input == {"api_key": "[REDACTED]"}
        assert "sk-abcdefghijklmnopqrstuvwx" not in str(execution.node_executions[1].output)


class TestRejectedRuns:
    """Requests that never start a run."""

    @pytest.mark.asyncio
    async def test_missing_identity(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(node("A", "trigger"))

        with pytest.raises(UnauthorizedError):
            await service.execute_workflow(workflow_id, None)
        with pytest.raises(UnauthorizedError):
            await service.get_execution("any", "")

    @pytest.mark.asyncio
    async def test_other_owner_gets_not_found(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(node("A", "trigger"), owner_id="owner-a")

        with pytest.raises(WorkflowNotFoundError):
            await service.execute_workflow(workflow_id, "owner-b")
        with pytest.raises(WorkflowNotFoundError):
            await service.execute_workflow("does-not-exist", "owner-a")

    @pytest.mark.asyncio
    async def test_cycle_writes_nothing(self, service, seed_workflow, session_factory) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email", "C"),
            node("C", "discord", "B"),
        )

        with pytest.raises(CycleDetectedError):
            await service.execute_workflow(workflow_id, "user-1")

        async with session_factory() as session:
            executions = await session.scalar(select(func.count()).select_from(models.WorkflowExecution))
            node_executions = await session.scalar(select(func.count()).select_from(models.NodeExecution))
        assert executions == 0
        assert node_executions == 0
        assert (await load_workflow_row(session_factory, workflow_id)).total_runs == 0

    @pytest.mark.asyncio
    async def test_unknown_node_type(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "slack"),
        )

        with pytest.raises(InvalidNodeTypeError):
            await service.execute_workflow(workflow_id, "user-1")


class TestHistory:
    """Tests for execution history reads."""

    @pytest.mark.asyncio
    async def test_get_execution_scoped_to_owner(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(node("A", "trigger"), owner_id="owner-a")
        execution = await run_to_completion(service, workflow_id, owner_id="owner-a")

        with pytest.raises(ExecutionNotFoundError):
            await service.get_execution(execution.id, "owner-b")
        with pytest.raises(ExecutionNotFoundError):
            await service.get_execution("missing", "owner-a")

    @pytest.mark.asyncio
    async def test_list_executions_newest_first(self, service, seed_workflow) -> None:
        workflow_id = await seed_workflow(node("A", "trigger"))
        first = await run_to_completion(service, workflow_id)
        second = await run_to_completion(service, workflow_id)

        runs = await service.list_executions(workflow_id, "user-1")

        assert [r.id for r in runs] == [second.id, first.id]
        assert [r.id for r in await service.list_executions(workflow_id, "user-1", limit=1)] == [second.id]
        with pytest.raises(WorkflowNotFoundError):
            await service.list_executions(workflow_id, "someone-else")


class TestRepositoryGuards:
    """Terminal states are written at most once."""

    @pytest.mark.asyncio
    async def test_finish_and_node_updates_are_guarded(self, service, seed_workflow, session_factory) -> None:
        workflow_id = await seed_workflow(node("A", "trigger"))
        execution = await run_to_completion(service, workflow_id)

        async with session_factory() as session:
            async with session.begin():
                repo = ExecutionRepository(session)
                finished_again = await repo.finish(
                    execution.id, "failed", "late", execution.completed_at,
                )
                updated = await repo.update_node_execution(
                    execution.node_executions[0].id, {"status": "running"},
                )

        assert finished_again is False
        assert updated is False
        reloaded = await service.get_execution(execution.id, "user-1")
        assert reloaded.status == ExecutionStatus.COMPLETED
        assert reloaded.node_executions[0].status == NodeExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_start_rolls_back_run_record(self, service, seed_workflow, session_factory) -> None:
        """The run row and totalRuns commit together or not at all."""
        workflow_id = await seed_workflow(
            node("A", "trigger", "B"),
            node("B", "email"),
        )

        with patch(
            "flowchord.services.execution_recorder.WorkflowRepository.record_run_started",
            new=AsyncMock(side_effect=RuntimeError("db down")),
        ):
            with pytest.raises(RuntimeError, match="db down"):
                await service.execute_workflow(workflow_id, "user-1")

        async with session_factory() as session:
            executions = await session.scalar(select(func.count()).select_from(models.WorkflowExecution))
        assert executions == 0
        assert (await load_workflow_row(session_factory, workflow_id)).total_runs == 0
