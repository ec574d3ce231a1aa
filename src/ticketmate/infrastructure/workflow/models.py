"""
Workflow Engine Models
======================

SQLAlchemy ORM models backing durable workflow runs.

A run is one execution of a registered function for one event; each named
step inside it leaves a checkpoint row so a retried run skips the steps
that already finished.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column

from ticketmate.infrastructure.database import Base


class RunStatus(str):
    """Workflow run states."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"


RUN_STATUSES = [
    RunStatus.QUEUED,
    RunStatus.RUNNING,
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.DEAD,
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowRunModel(Base):
    """
    Database model for one workflow run.

    Maps to the 'workflow_runs' table.
    """
    __tablename__ = "workflow_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # What ran, and for which event
    function_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Execution state
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RunStatus.QUEUED, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    output: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lease_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # One run per (function, idempotency key); NULL keys never collide
    __table_args__ = (
        UniqueConstraint("function_id", "idempotency_key", name="uq_workflow_runs_idempotency"),
    )


class WorkflowStepModel(Base):
    """
    Checkpoint of one finished step.

    Maps to the 'workflow_steps' table.
    """
    __tablename__ = "workflow_steps"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workflow_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_id: Mapped[str] = mapped_column(String(255), nullable=False)
    output: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("run_id", "step_id", name="uq_workflow_steps_run_step"),
    )
