"""
Kernel Layer

Persistence foundations shared by the API and the workflow engine:
- Image submissions (derived fields written once)
- Durable workflow instances and step results
- Workflow event inbox (approval decisions)
"""

from src.kernel.models import (
    Image,
    InstanceStatus,
    StepStatus,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStep,
)

__all__ = [
    "Image",
    "InstanceStatus",
    "StepStatus",
    "WorkflowEvent",
    "WorkflowInstance",
    "WorkflowStep",
]
