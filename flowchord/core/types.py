"""Core engine types.

This module provides the status enums and the immutable workflow snapshots
the engine executes. Snapshots are taken once from the persisted records
at run start, so a run never reads or mutates Node rows while it is going.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
import uuid

from pydantic import BaseModel, ConfigDict, Field


def generate_id() -> str:
    """Generate unique ID."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time without timezone info (for SQLite compat)."""
    return datetime.now(UTC).replace(tzinfo=None)


class NodeType(str, Enum):
    """Capability a node invokes."""

    EMAIL = "email"
    DISCORD = "discord"
    GEMINI = "gemini"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    TRIGGER = "trigger"
    CONDITION = "condition"
    DELAY = "delay"


class WorkflowStatus(str, Enum):
    """Workflow lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class TriggerType(str, Enum):
    """How a workflow is started."""

    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    EVENT = "event"


class NodeDisplayStatus(str, Enum):
    """Last-known UI state cached on a Node row. Not execution history."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    """WorkflowExecution status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class NodeExecutionStatus(str, Enum):
    """NodeExecution status: pending -> running -> {completed | failed | skipped}."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_NODE_STATUSES


_TERMINAL_NODE_STATUSES = frozenset({
    NodeExecutionStatus.COMPLETED,
    NodeExecutionStatus.FAILED,
    NodeExecutionStatus.SKIPPED,
})


class Connection(BaseModel):
    """Outgoing edge stored on the source node."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target_node_id: str = Field(..., alias="targetNodeId", min_length=1)
    edge_id: str | None = Field(default=None, alias="edgeId")


class NodeSpec(BaseModel):
    """Immutable snapshot of one Node as the engine sees it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: NodeType
    config: dict[str, Any] = Field(default_factory=dict)
    connections: tuple[Connection, ...] = ()
    name: str | None = None
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.name or self.id


class WorkflowSpec(BaseModel):
    """Immutable snapshot of a Workflow, its policy and its nodes."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    owner_id: str | None = None
    name: str = ""
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0, alias="retryCount")
    timeout_ms: int = Field(default=30_000, gt=0, alias="timeoutMs")
    parallel_execution: bool = Field(default=False, alias="parallelExecution")
    nodes: tuple[NodeSpec, ...] = ()

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class NodeExecution:
    """One node invocation within a run."""

    id: str
    execution_id: str
    node_id: str
    node_type: str
    status: NodeExecutionStatus = NodeExecutionStatus.PENDING
    input: Any = None
    output: Any | None = None
    error: str | None = None
    attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.started_at and self.completed_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return None


@dataclass
class WorkflowExecution:
    """One run of a workflow."""

    id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    trigger_type: str = TriggerType.MANUAL.value
    node_executions: list[NodeExecution] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.completed_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return None

    def node_status(self, node_id: str) -> NodeExecutionStatus | None:
        """Status of the given node in this run, if it was reached."""
        for ne in self.node_executions:
            if ne.node_id == node_id:
                return ne.status
        return None

    def statuses(self) -> dict[str, NodeExecutionStatus]:
        """Node id -> status for every node reached in this run."""
        return {ne.node_id: ne.status for ne in self.node_executions}
