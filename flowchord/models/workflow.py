"""Workflow and Node models."""
from datetime import datetime
from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from flowchord.core.types import utcnow as _utcnow
from flowchord.db.database import Base


class Workflow(Base):
    """Workflow entity with its execution policy and run counters."""

    __tablename__ = "workflows"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
    )
    owner_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
    )
    trigger_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="manual",
    )
    trigger_config: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="{}",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    timeout_ms: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=30000,
    )
    parallel_execution: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    total_runs: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    successful_runs: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    failed_runs: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    last_run: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class Node(Base):
    """Node entity. ``status`` is a display cache, not execution history."""

    __tablename__ = "nodes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
    )
    workflow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    label: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    config: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="{}",
    )
    position_x: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )
    position_y: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )
    connections: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="[]",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="idle",
    )
    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
