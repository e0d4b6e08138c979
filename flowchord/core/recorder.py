"""Execution Recorder.

The recorder persists a run and its node transitions. The executor never
touches storage directly: it hands snapshots to an ``ExecutionRecorder``
through a ``RecordDispatcher``, which keeps the calls for one entity in
the order they were issued while letting different entities proceed
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Awaitable, Callable, Hashable

from flowchord.core.types import (
    ExecutionStatus,
    NodeExecution,
    NodeExecutionStatus,
    WorkflowExecution,
)

logger = logging.getLogger(__name__)


class ExecutionRecorder(ABC):
    """Persistence contract for runs and node transitions.

    Implementations receive copies; they may keep them but the executor
    will not mutate what it passed in.
    """

    @abstractmethod
    async def create_workflow_execution(self, execution: WorkflowExecution) -> None:
        """Persist a new run in status ``running`` and count it as started.

        The run record, the workflow's total run counter and its last run
        time are written as one unit: either all of them land or none do.
        """

    @abstractmethod
    async def create_node_execution(self, node_execution: NodeExecution) -> None:
        """Persist a new node execution in status ``pending``."""

    @abstractmethod
    async def update_node_execution(self, node_execution: NodeExecution) -> None:
        """Persist a node status transition with its input, output, error and times."""

    @abstractmethod
    async def finish_workflow_execution(self, execution: WorkflowExecution) -> None:
        """Persist the terminal status of a run and bump the matching outcome counter.

        A run reaches a terminal status at most once; later calls are ignored.
        """


class RecordDispatcher:
    """Serializes recorder calls per key.

    Each submitted call is chained behind the previous call for the same
    key (a NodeExecution id or an execution id), so the record of one
    entity always sees its transitions in order. Failures are logged and
    do not break the chain.
    """

    def __init__(self) -> None:
        self._tails: dict[Hashable, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._failures = 0

    @property
    def failures(self) -> int:
        """Recorder calls that raised."""
        return self._failures

    def submit(
        self,
        key: Hashable,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> asyncio.Task:
        previous = self._tails.get(key)
        task = asyncio.create_task(self._chain(previous, fn, args))
        self._tails[key] = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _chain(
        self,
        previous: asyncio.Task | None,
        fn: Callable[..., Awaitable[Any]],
        args: tuple[Any, ...],
    ) -> None:
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)
        try:
            await fn(*args)
        except Exception:
            self._failures += 1
            logger.exception("Recorder call %s failed", getattr(fn, "__name__", fn))

    async def wait_for(self, key: Hashable) -> None:
        """Wait until every call submitted so far for ``key`` has finished."""
        task = self._tails.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every outstanding call."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class InMemoryExecutionRecorder(ExecutionRecorder):
    """Recorder that keeps everything in dicts.

    Used by tests and by embedders that do not need durable history.
    Every call is appended to ``calls`` as ``(method, entity_id, status)``.
    """

    def __init__(self) -> None:
        self.executions: dict[str, WorkflowExecution] = {}
        self.node_executions: dict[str, NodeExecution] = {}
        self.counters: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str | None]] = []
        self._lock = asyncio.Lock()

    def _counter(self, workflow_id: str) -> dict[str, Any]:
        return self.counters.setdefault(
            workflow_id,
            {"total_runs": 0, "successful_runs": 0, "failed_runs": 0, "last_run": None},
        )

    async def create_workflow_execution(self, execution: WorkflowExecution) -> None:
        async with self._lock:
            self.executions[execution.id] = replace(execution, node_executions=[])
            counter = self._counter(execution.workflow_id)
            counter["total_runs"] += 1
            counter["last_run"] = execution.started_at
            self.calls.append(("create_workflow_execution", execution.id, execution.status.value))

    async def create_node_execution(self, node_execution: NodeExecution) -> None:
        async with self._lock:
            record = replace(node_execution)
            self.node_executions[record.id] = record
            execution = self.executions.get(record.execution_id)
            if execution is not None:
                execution.node_executions.append(record)
            self.calls.append(("create_node_execution", record.id, record.status.value))

    async def update_node_execution(self, node_execution: NodeExecution) -> None:
        async with self._lock:
            record = self.node_executions.get(node_execution.id)
            if record is None:
                raise KeyError(f"Unknown node execution {node_execution.id}")
            if record.status.is_terminal:
                logger.warning(
                    "Ignoring transition of node execution %s from terminal status %s to %s",
                    record.id, record.status.value, node_execution.status.value,
                )
                return
            record.status = node_execution.status
            record.input = node_execution.input
            record.output = node_execution.output
            record.error = node_execution.error
            record.attempts = node_execution.attempts
            record.started_at = node_execution.started_at
            record.completed_at = node_execution.completed_at
            self.calls.append(("update_node_execution", record.id, record.status.value))

    async def finish_workflow_execution(self, execution: WorkflowExecution) -> None:
        async with self._lock:
            record = self.executions.get(execution.id)
            if record is None:
                raise KeyError(f"Unknown execution {execution.id}")
            if record.status.is_terminal:
                logger.warning("Execution %s already finished as %s", record.id, record.status.value)
                return
            record.status = execution.status
            record.error = execution.error
            record.completed_at = execution.completed_at

            counter = self._counter(record.workflow_id)
            if execution.status is ExecutionStatus.COMPLETED:
                counter["successful_runs"] += 1
            elif execution.status is ExecutionStatus.FAILED:
                counter["failed_runs"] += 1
            self.calls.append(("finish_workflow_execution", record.id, record.status.value))

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def transitions(self, node_id: str) -> list[str]:
        """Status sequence recorded for a node, across all runs."""
        ids = {ne.id for ne in self.node_executions.values() if ne.node_id == node_id}
        return [
            status for method, entity_id, status in self.calls
            if entity_id in ids and method in ("create_node_execution", "update_node_execution")
        ]

    def node_record(self, execution_id: str, node_id: str) -> NodeExecution | None:
        for ne in self.node_executions.values():
            if ne.execution_id == execution_id and ne.node_id == node_id:
                return ne
        return None

    def statuses(self, execution_id: str) -> dict[str, NodeExecutionStatus]:
        return {
            ne.node_id: ne.status
            for ne in self.node_executions.values()
            if ne.execution_id == execution_id
        }
