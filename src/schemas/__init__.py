"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.common import ErrorResponse, HealthResponse
from src.schemas.image import (
    AltTextResponse,
    ApprovalRequest,
    ApprovalResponse,
    TagsResponse,
    UploadedImage,
    UploadResponse,
)
from src.schemas.workflow import WorkflowStatus

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "AltTextResponse",
    "ApprovalRequest",
    "ApprovalResponse",
    "TagsResponse",
    "UploadedImage",
    "UploadResponse",
    "WorkflowStatus",
]
