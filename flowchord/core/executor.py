"""Workflow execution engine.

Walks a validated ``ExecutionGraph`` and runs its nodes through their
adapters:
- AND-join: a node runs once every reachable predecessor is terminal and
  none of them failed, was skipped, or is a condition that closed its branch
- sequential mode runs one node at a time in topological order (ties by
  insertion order); parallel mode dispatches every eligible node at once
- per-node timeout from ``timeoutMs`` and up to ``retryCount`` extra
  attempts for transient failures
- every status transition is handed to the ``ExecutionRecorder`` in
  per-entity order
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
import heapq
import logging
from typing import Any, Protocol

from flowchord.adapters.base import AdapterRegistry, BaseAdapter, InvocationContext
from flowchord.config import Settings, get_settings
from flowchord.core.graph import ExecutionGraph, build_graph
from flowchord.core.recorder import ExecutionRecorder, RecordDispatcher
from flowchord.core.secrets import redact_secrets
from flowchord.core.types import (
    ExecutionStatus,
    NodeExecution,
    NodeExecutionStatus,
    NodeSpec,
    WorkflowExecution,
    WorkflowSpec,
    generate_id,
    utcnow,
)
from flowchord.resilience.retry import RetryPolicy, RetryStrategy
from flowchord.resilience.timeout import TimeoutManager

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    """Receives run events (BackgroundExecutionManager implements it)."""

    def emit(self, execution_id: str, event_type: str, data: dict[str, Any]) -> None:
        ...


@dataclass
class _RunState:
    """Mutable bookkeeping of one run. Never shared between runs."""

    workflow: WorkflowSpec
    graph: ExecutionGraph
    execution: WorkflowExecution
    trigger_payload: Any
    retry_policy: RetryPolicy
    timeouts: TimeoutManager
    dispatcher: RecordDispatcher = field(default_factory=RecordDispatcher)
    records: dict[str, NodeExecution] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    branch_open: dict[str, bool] = field(default_factory=dict)
    remaining: dict[str, int] = field(default_factory=dict)
    ready: list[tuple[int, str]] = field(default_factory=list)


class WorkflowExecutor:
    """Runs workflows over an adapter registry and an execution recorder.

    Example:
        >>> executor = WorkflowExecutor(create_default_registry(), InMemoryExecutionRecorder())
        >>> execution = await executor.execute(workflow, trigger_payload={"text": "hi"})
        >>> execution.status
        <ExecutionStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        recorder: ExecutionRecorder,
        *,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
        event_emitter: EventEmitter | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._registry = registry
        self._recorder = recorder
        self._max_nodes = settings.max_workflow_nodes
        self._retry_policy = retry_policy or RetryPolicy(
            strategy=RetryStrategy(settings.retry_strategy),
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )
        self._event_emitter = event_emitter

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    @property
    def recorder(self) -> ExecutionRecorder:
        return self._recorder

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def prepare(self, workflow: WorkflowSpec) -> ExecutionGraph:
        """Validate a workflow and build its graph. Writes nothing.

        Raises:
            ValidationError: Invalid node type or config, or bad workflow shape.
            GraphError: Cycle or dangling connection.
        """
        graph = build_graph(workflow, max_nodes=self._max_nodes)
        for node in workflow.nodes:
            self._registry.validate(node)
        return graph

    async def start(
        self,
        workflow: WorkflowSpec,
        *,
        trigger_type: str | None = None,
    ) -> tuple[WorkflowExecution, ExecutionGraph]:
        """Validate, then create the running WorkflowExecution.

        The run record and the total run counter are written together; if
        that write fails nothing is left behind and the error propagates.
        Call ``run`` to execute.
        """
        graph = self.prepare(workflow)
        execution = WorkflowExecution(
            id=generate_id(),
            workflow_id=workflow.id,
            trigger_type=trigger_type or workflow.trigger_type.value,
        )
        await self._recorder.create_workflow_execution(replace(execution, node_executions=[]))

        logger.info(
            "Started execution %s of workflow %s (%d nodes, parallel=%s)",
            execution.id, workflow.id, len(graph), workflow.parallel_execution,
        )
        return execution, graph

    async def execute(
        self,
        workflow: WorkflowSpec,
        trigger_payload: Any = None,
        *,
        trigger_type: str | None = None,
    ) -> WorkflowExecution:
        """Start and run a workflow to completion."""
        execution, graph = await self.start(workflow, trigger_type=trigger_type)
        return await self.run(workflow, execution, graph, trigger_payload)

    async def run(
        self,
        workflow: WorkflowSpec,
        execution: WorkflowExecution,
        graph: ExecutionGraph,
        trigger_payload: Any = None,
    ) -> WorkflowExecution:
        """Execute every reachable node of a started run.

        Node failures never escape: they are recorded and turn into skips
        downstream. The returned execution carries the terminal status.
        """
        state = _RunState(
            workflow=workflow,
            graph=graph,
            execution=execution,
            trigger_payload=trigger_payload,
            retry_policy=self._retry_policy.with_max_retries(workflow.retry_count),
            timeouts=TimeoutManager.from_millis(workflow.timeout_ms),
        )
        self._seed(state)

        try:
            if workflow.parallel_execution:
                await self._run_parallel(state)
            else:
                await self._run_sequential(state)
        except asyncio.CancelledError:
            logger.warning("Execution %s cancelled", execution.id)
            self._abort(state, "Execution cancelled")
            await self._finish(state)
            raise
        except Exception as e:
            logger.exception("Execution %s crashed", execution.id)
            self._abort(state, redact_secrets(f"{type(e).__name__}: {e}"))
        else:
            self._conclude(state)

        await self._finish(state)
        return execution

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _seed(self, state: _RunState) -> None:
        graph = state.graph
        for node_id in graph.reachable:
            state.remaining[node_id] = len(graph.join_predecessors(node_id))
        for root in graph.roots:
            heapq.heappush(state.ready, (graph.index(root), root))

    def _release(self, state: _RunState, node_id: str) -> None:
        """Count a terminal node against its successors' joins."""
        for target in state.graph.successors(node_id):
            if target not in state.remaining:
                continue
            state.remaining[target] -= 1
            if state.remaining[target] == 0:
                heapq.heappush(state.ready, (state.graph.index(target), target))

    async def _run_sequential(self, state: _RunState) -> None:
        while state.ready:
            _, node_id = heapq.heappop(state.ready)
            reason = self._skip_reason(state, node_id)
            if reason:
                self._skip_node(state, node_id, reason)
            else:
                await self._execute_node(state, node_id)
            self._release(state, node_id)

    async def _run_parallel(self, state: _RunState) -> None:
        in_flight: dict[asyncio.Task, str] = {}
        try:
            while state.ready or in_flight:
                while state.ready:
                    _, node_id = heapq.heappop(state.ready)
                    reason = self._skip_reason(state, node_id)
                    if reason:
                        self._skip_node(state, node_id, reason)
                        self._release(state, node_id)
                        continue
                    task = asyncio.create_task(self._execute_node(state, node_id))
                    in_flight[task] = node_id

                if not in_flight:
                    continue

                done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = in_flight.pop(task)
                    task.result()
                    self._release(state, node_id)
        finally:
            for task in in_flight:
                task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)

    def _skip_reason(self, state: _RunState, node_id: str) -> str | None:
        for pred in state.graph.join_predecessors(node_id):
            record = state.records[pred]
            if record.status is NodeExecutionStatus.FAILED:
                return f"Predecessor '{pred}' failed"
            if record.status is NodeExecutionStatus.SKIPPED:
                return f"Predecessor '{pred}' was skipped"
            if not state.branch_open.get(pred, True):
                return f"Condition '{pred}' evaluated false"
        return None

    def _input_for(self, state: _RunState, node_id: str) -> Any:
        preds = state.graph.join_predecessors(node_id)
        if not preds:
            return state.trigger_payload
        if len(preds) == 1:
            return state.outputs.get(preds[0])
        return {pred: state.outputs.get(pred) for pred in preds}

    # ------------------------------------------------------------------
    # Node lifecycle
    # ------------------------------------------------------------------

    def _new_record(self, state: _RunState, node: NodeSpec) -> NodeExecution:
        record = NodeExecution(
            id=generate_id(),
            execution_id=state.execution.id,
            node_id=node.id,
            node_type=node.type.value,
        )
        state.records[node.id] = record
        state.execution.node_executions.append(record)
        return record

    def _skip_node(self, state: _RunState, node_id: str, reason: str) -> None:
        node = state.graph.node(node_id)
        record = self._new_record(state, node)
        self._submit_create(state, record)

        record.status = NodeExecutionStatus.SKIPPED
        record.error = reason
        record.completed_at = utcnow()
        self._submit_update(state, record)

        logger.debug("Node %s skipped: %s", node_id, reason)
        self._emit(state, "node_skipped", {"node_id": node_id, "reason": reason})

    async def _execute_node(self, state: _RunState, node_id: str) -> None:
        node = state.graph.node(node_id)
        adapter = self._registry.get(node.type, node.id)
        payload = self._input_for(state, node_id)

        record = self._new_record(state, node)
        record.input = redact_secrets(payload)
        self._submit_create(state, record)

        # running is never recorded before the predecessors' terminal records
        for pred in state.graph.join_predecessors(node_id):
            await state.dispatcher.wait_for(state.records[pred].id)

        record.status = NodeExecutionStatus.RUNNING
        record.started_at = utcnow()
        self._submit_update(state, record)
        logger.debug(
            "Node %s (%s) running with config %s",
            node_id, node.type.value, redact_secrets(node.config),
        )
        self._emit(state, "node_started", {"node_id": node_id, "node_type": node.type.value})

        try:
            output = await self._invoke_with_retry(state, node, adapter, payload, record)
        except Exception as e:
            record.status = NodeExecutionStatus.FAILED
            record.error = redact_secrets(f"{type(e).__name__}: {e}")
            logger.warning(
                "Node %s failed after %d attempt(s): %s", node_id, record.attempts, record.error,
            )
        else:
            record.status = NodeExecutionStatus.COMPLETED
            record.output = redact_secrets(output)
            state.outputs[node_id] = adapter.forward(output)
            state.branch_open[node_id] = adapter.opens_branch(output)

        record.completed_at = utcnow()
        self._submit_update(state, record)

        if record.status is NodeExecutionStatus.COMPLETED:
            self._emit(state, "node_completed", {
                "node_id": node_id,
                "status": record.status.value,
                "duration_ms": record.duration_ms,
                "attempts": record.attempts,
            })
        else:
            self._emit(state, "node_failed", {
                "node_id": node_id,
                "error": record.error,
                "attempts": record.attempts,
            })

    async def _invoke_with_retry(
        self,
        state: _RunState,
        node: NodeSpec,
        adapter: BaseAdapter,
        payload: Any,
        record: NodeExecution,
    ) -> Any:
        """Invoke an adapter, retrying retryable failures within the budget.

        Each attempt is a fresh invocation with its own deadline.
        """
        policy = state.retry_policy
        loop = asyncio.get_running_loop()
        attempt = 0

        while True:
            record.attempts = attempt + 1
            timeout = state.timeouts.default_timeout
            context = InvocationContext(
                workflow_id=state.workflow.id,
                execution_id=state.execution.id,
                node_id=node.id,
                attempt=attempt + 1,
                trigger_type=state.execution.trigger_type,
                deadline=loop.time() + timeout,
            )
            try:
                return await state.timeouts.execute(
                    adapter.invoke,
                    node.config,
                    payload,
                    context,
                    timeout=timeout,
                    node_id=node.id,
                )
            except Exception as e:
                if not policy.should_retry(e, attempt):
                    raise

                delay = policy.get_delay(attempt, e)
                logger.warning(
                    "Node %s attempt %d/%d failed (%s), retrying in %.2fs",
                    node.id, attempt + 1, policy.max_attempts,
                    redact_secrets(str(e)), delay,
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _conclude(self, state: _RunState) -> None:
        execution = state.execution
        failed = [
            r for r in execution.node_executions
            if r.status is NodeExecutionStatus.FAILED
        ]
        if failed:
            execution.status = ExecutionStatus.FAILED
            execution.error = "; ".join(f"Node '{r.node_id}' failed: {r.error}" for r in failed)
        else:
            execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utcnow()

    def _abort(self, state: _RunState, reason: str) -> None:
        """Fail every unfinished node and the run itself."""
        now = utcnow()
        for record in state.execution.node_executions:
            if not record.status.is_terminal:
                record.status = NodeExecutionStatus.FAILED
                record.error = reason
                record.completed_at = now
                self._submit_update(state, record)
        state.execution.status = ExecutionStatus.FAILED
        state.execution.error = reason
        state.execution.completed_at = now

    async def _finish(self, state: _RunState) -> None:
        execution = state.execution
        await state.dispatcher.drain()
        state.dispatcher.submit(
            execution.id,
            self._recorder.finish_workflow_execution,
            replace(execution, node_executions=[]),
        )
        await state.dispatcher.drain()

        if state.dispatcher.failures:
            logger.warning(
                "Execution %s: %d recorder call(s) failed", execution.id, state.dispatcher.failures,
            )
        logger.info(
            "Execution %s of workflow %s finished: %s (%s ms)",
            execution.id, execution.workflow_id, execution.status.value, execution.duration_ms,
        )

    # ------------------------------------------------------------------
    # Recorder and event plumbing
    # ------------------------------------------------------------------

    def _submit_create(self, state: _RunState, record: NodeExecution) -> None:
        state.dispatcher.submit(record.id, self._recorder.create_node_execution, replace(record))

    def _submit_update(self, state: _RunState, record: NodeExecution) -> None:
        state.dispatcher.submit(record.id, self._recorder.update_node_execution, replace(record))

    def _emit(self, state: _RunState, event_type: str, data: dict[str, Any]) -> None:
        if self._event_emitter is None:
            return
        try:
            self._event_emitter.emit(state.execution.id, event_type, data)
        except Exception:
            logger.exception("Failed to emit %s for execution %s", event_type, state.execution.id)
