"""
Workflow status schema.
"""

from typing import Any, Optional

from pydantic import BaseModel

from src.kernel.models.workflow import InstanceStatus


class WorkflowStatus(BaseModel):
    """Status object reported for a workflow instance."""

    status: InstanceStatus
    stage: Optional[str] = None
    error: Optional[str] = None
    output: Optional[Any] = None
