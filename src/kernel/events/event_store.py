"""
Event inbox for workflow instances.

Approval decisions are appended here by the HTTP boundary and consumed by
waiting workflow steps. Consumption is FIFO per (instance, event type).
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.base import utcnow
from src.kernel.models.event_log import WorkflowEvent


class EventStore:
    """
    Service for delivering and consuming workflow events.

    Usage:
        event_store = EventStore(session)
        await event_store.deliver(
            instance_id=instance.id,
            event_type=ApprovalEventType.TAG_APPROVAL.value,
            payload={"approved": True},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def deliver(
        self,
        instance_id: str,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> WorkflowEvent:
        """Append an event to an instance's inbox. Caller commits."""
        event = WorkflowEvent(
            instance_id=instance_id,
            event_type=event_type,
            payload=payload or {},
        )
        self.session.add(event)
        return event

    async def next_pending(self, instance_id: str, event_type: str) -> Optional[WorkflowEvent]:
        """Oldest unconsumed event of the given type, if any."""
        query = (
            select(WorkflowEvent)
            .where(
                and_(
                    WorkflowEvent.instance_id == instance_id,
                    WorkflowEvent.event_type == event_type,
                    WorkflowEvent.consumed_at.is_(None),
                )
            )
            .order_by(WorkflowEvent.created_at, WorkflowEvent.id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def consume(self, event: WorkflowEvent) -> None:
        event.consumed_at = utcnow()

    async def get_instance_history(self, instance_id: str, limit: int = 100) -> List[WorkflowEvent]:
        """All events delivered to an instance, oldest first."""
        query = (
            select(WorkflowEvent)
            .where(WorkflowEvent.instance_id == instance_id)
            .order_by(WorkflowEvent.created_at)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
