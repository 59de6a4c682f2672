"""
Workflow event infrastructure.

Inbound approval signals are persisted before any waiter is woken.
"""

from src.kernel.events.event_store import EventStore
from src.kernel.events.event_types import ApprovalEventType, ApprovalPayload

__all__ = [
    "EventStore",
    "ApprovalEventType",
    "ApprovalPayload",
]
