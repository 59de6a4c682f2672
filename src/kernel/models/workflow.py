"""
Workflow engine models - durable instance and step records.

A WorkflowInstance row is the authoritative status of one workflow run.
WorkflowStep rows cache the output of each named step so a resumed or
re-attempted run never repeats a step that already completed.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_key, generate_uuid, utcnow


class InstanceStatus(str, Enum):
    """Externally reported status of a workflow instance."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceStatus.COMPLETE, InstanceStatus.ERROR)


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class WorkflowInstance(Base, TimestampMixin):
    """One durable run of a workflow."""

    __tablename__ = "workflow_instances"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=generate_key,
    )
    params: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    status: Mapped[InstanceStatus] = mapped_column(
        String(20),
        default=InstanceStatus.QUEUED,
        nullable=False,
        index=True,
    )
    # Current state-machine stage, reported alongside status
    stage: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    output: Mapped[Optional[Any]] = mapped_column(
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<WorkflowInstance {self.id} {self.status}>"


class WorkflowStep(Base):
    """Cached result of one named step of an instance."""

    __tablename__ = "workflow_steps"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    instance_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    status: Mapped[StepStatus] = mapped_column(
        String(20),
        default=StepStatus.PENDING,
        nullable=False,
    )
    output: Mapped[Optional[Any]] = mapped_column(
        JSON,
        nullable=True,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("instance_id", "name", name="uq_workflow_steps_instance_name"),
    )

    def __repr__(self) -> str:
        return f"<WorkflowStep {self.instance_id}:{self.name} {self.status}>"
