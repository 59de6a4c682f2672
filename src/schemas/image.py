"""
Image submission request/response schemas.

Wire names are camelCase (instanceId, altText, fileName) to match the
browser client; Python attributes stay snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from src.schemas.workflow import WorkflowStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UploadResponse(BaseModel):
    """Response to a new image submission."""

    id: str
    details: WorkflowStatus
    success: bool = True
    message: str = "Image upload started successfully"


class TagsResponse(_CamelModel):
    instance_id: str = Field(alias="instanceId")
    tags: Optional[str] = None


class AltTextResponse(_CamelModel):
    instance_id: str = Field(alias="instanceId")
    alt_text: Optional[str] = Field(default=None, alias="altText")


class ApprovalRequest(_CamelModel):
    """Approval decision for one of the AI gates."""

    instance_id: str = Field(alias="instanceId", min_length=1)
    approved: StrictBool


class ApprovalResponse(BaseModel):
    success: bool = True


class UploadedImage(_CamelModel):
    """
    Normalized snapshot reported by the status poller.

    tags/alt_text are only filled on the single 'complete' snapshot.
    """

    file_name: str = Field(alias="fileName")
    status: str
    instance_id: str = Field(alias="instanceId")
    tags: Optional[str] = None
    alt_text: Optional[str] = Field(default=None, alias="altText")
