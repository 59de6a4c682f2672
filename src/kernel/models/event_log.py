"""
Inbound workflow events (approval decisions).

Events are appended when a client sends a decision and marked consumed
when a waiting step picks them up. An event that arrives before the
workflow starts waiting stays in the inbox until it is consumed.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, JSON, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid, utcnow


class WorkflowEvent(Base):
    """A signal delivered to one workflow instance."""

    __tablename__ = "workflow_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    instance_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_workflow_events_inbox", "instance_id", "event_type", "consumed_at"),
    )

    def __repr__(self) -> str:
        return f"<WorkflowEvent {self.event_type} -> {self.instance_id}>"
