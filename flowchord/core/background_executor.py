"""Background execution manager for async workflow dispatch.

Runs are dispatched as asyncio tasks so ``execute_workflow`` can return as
soon as the WorkflowExecution record exists. Run and node events are kept
in memory per execution and fanned out to subscriber queues.

SCALING NOTE: events and subscribers live in this process only. Several
workers would need a shared broker for both.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC, timedelta
from typing import Any, Awaitable, Callable

from flowchord.config import Settings
from flowchord.core.secrets import redact_secrets

logger = logging.getLogger(__name__)

# Defaults when no settings are given
MAX_EVENTS_PER_EXECUTION = 1000
EVENT_TTL_SECONDS = 3600  # 1 hour


@dataclass
class ExecutionEvent:
    """Event emitted during execution."""
    execution_id: str
    event_type: str  # "started", "node_started", "node_completed", "node_failed", "node_skipped", "completed", "failed"
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class BackgroundExecutionManager:
    """Manages background workflow execution tasks."""

    def __init__(
        self,
        max_events: int = MAX_EVENTS_PER_EXECUTION,
        event_ttl_seconds: int = EVENT_TTL_SECONDS,
    ) -> None:
        self._max_events = max_events
        self._event_ttl = event_ttl_seconds
        self._tasks: dict[str, asyncio.Task] = {}
        self._events: dict[str, list[ExecutionEvent]] = {}
        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self._event_timestamps: dict[str, datetime] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> BackgroundExecutionManager:
        return cls(
            max_events=settings.max_events_per_execution,
            event_ttl_seconds=settings.event_ttl_seconds,
        )

    async def dispatch(
        self,
        execution_fn: Callable[[], Awaitable[Any]],
        execution_id: str,
    ) -> None:
        """Dispatch execution as background task."""
        # Cleanup stale events before dispatching new work
        self._cleanup_stale_events()

        self._events[execution_id] = []
        self._event_timestamps[execution_id] = datetime.now(UTC)
        self.emit(execution_id, "started", {})
        task = asyncio.create_task(self._run(execution_fn, execution_id))
        self._tasks[execution_id] = task

    async def _run(self, execution_fn: Callable[[], Awaitable[Any]], execution_id: str) -> None:
        """Run execution and track results."""
        try:
            result = await execution_fn()
            status = getattr(result, "status", "completed")
            status = getattr(status, "value", status)
            data: dict[str, Any] = {"status": status}
            error = getattr(result, "error", None)
            if error:
                data["error"] = error
            self.emit(execution_id, "failed" if status == "failed" else "completed", data)
        except asyncio.CancelledError:
            self.emit(execution_id, "failed", {"status": "failed", "error": "Execution cancelled"})
            raise
        except Exception as e:
            logger.exception("Background execution %s failed", execution_id)
            self.emit(execution_id, "failed", {"status": "failed", "error": str(e)})
        finally:
            self._tasks.pop(execution_id, None)

    def emit(self, execution_id: str, event_type: str, data: dict[str, Any]) -> None:
        """Record an event and push it to subscribers. Data is redacted first."""
        event = ExecutionEvent(
            execution_id=execution_id,
            event_type=event_type,
            data=redact_secrets(data),
        )
        if execution_id not in self._events:
            self._events[execution_id] = []

        events = self._events[execution_id]
        # Enforce max events per execution
        if len(events) >= self._max_events:
            # Keep last half when limit reached
            self._events[execution_id] = events[len(events) // 2:]

        self._events[execution_id].append(event)
        self._event_timestamps[execution_id] = datetime.now(UTC)

        for queue in self._subscribers.get(execution_id, []):
            queue.put_nowait(event)

    def subscribe(self, execution_id: str) -> asyncio.Queue:
        """Subscribe to execution events."""
        queue: asyncio.Queue = asyncio.Queue()
        if execution_id not in self._subscribers:
            self._subscribers[execution_id] = []
        self._subscribers[execution_id].append(queue)
        return queue

    def unsubscribe(self, execution_id: str, queue: asyncio.Queue) -> None:
        """Unsubscribe from execution events."""
        if execution_id in self._subscribers:
            self._subscribers[execution_id] = [q for q in self._subscribers[execution_id] if q is not queue]
            # Clean up empty subscriber lists
            if not self._subscribers[execution_id]:
                del self._subscribers[execution_id]

    def is_running(self, execution_id: str) -> bool:
        """Check if execution is still running."""
        return execution_id in self._tasks

    def get_events(self, execution_id: str) -> list[ExecutionEvent]:
        """Get all events for an execution."""
        return self._events.get(execution_id, [])

    async def wait(self, execution_id: str) -> None:
        """Wait until the background task of an execution has finished."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def _cleanup_stale_events(self) -> None:
        """Remove events older than TTL for completed executions."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self._event_ttl)
        stale_ids = [
            eid for eid, ts in self._event_timestamps.items()
            if ts < cutoff and eid not in self._tasks
        ]
        for eid in stale_ids:
            self._events.pop(eid, None)
            self._subscribers.pop(eid, None)
            self._event_timestamps.pop(eid, None)

    async def shutdown(self) -> None:
        """Gracefully shutdown all running tasks."""
        if not self._tasks:
            return

        logger.info("Shutting down %d background tasks", len(self._tasks))

        for task in list(self._tasks.values()):
            task.cancel()

        # Wait for all tasks to complete
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        logger.info("All background tasks shut down")
