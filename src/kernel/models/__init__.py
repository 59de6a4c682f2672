"""
Kernel Data Models

SQLAlchemy models for image submissions and the durable workflow engine.
"""

from src.kernel.models.base import Base, TimestampMixin, as_utc, generate_key, generate_uuid, utcnow
from src.kernel.models.image import Image
from src.kernel.models.workflow import (
    InstanceStatus,
    StepStatus,
    WorkflowInstance,
    WorkflowStep,
)
from src.kernel.models.event_log import WorkflowEvent

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "as_utc",
    "generate_key",
    "generate_uuid",
    "utcnow",
    # Images
    "Image",
    # Workflow engine
    "InstanceStatus",
    "StepStatus",
    "WorkflowInstance",
    "WorkflowStep",
    "WorkflowEvent",
]
