"""
Workflow event types and payload schemas.

The event type strings double as route names for the approval endpoints.
"""

from enum import Enum

from pydantic import BaseModel, StrictBool


class ApprovalEventType(str, Enum):
    """Signals a paused image workflow waits on."""

    TAG_APPROVAL = "approval-for-ai-tagging"
    ALTTEXT_APPROVAL = "approval-for-ai-alttext"


class ApprovalPayload(BaseModel):
    """Decision carried by an approval event."""

    approved: StrictBool
