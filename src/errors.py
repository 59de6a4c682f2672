"""
Error taxonomy shared by the HTTP boundary, the workflow engine and the
status poller client.

Each error carries the HTTP status it maps to at the boundary. Approval
timeouts are not errors: a gate that times out is treated as a denial.
"""

from typing import Any, Optional


class ImageWorkflowError(Exception):
    """Base exception for the image tagging service."""

    status_code: int = 500

    def __init__(self, message: str, instance_id: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.instance_id = instance_id
        self.context = context

    def __str__(self) -> str:
        if self.instance_id:
            return f"[{self.instance_id}] {self.message}"
        return self.message


class ValidationError(ImageWorkflowError):
    """Missing or malformed request input."""

    status_code = 400


class NotFound(ImageWorkflowError):
    """Unknown route."""

    status_code = 404


class MethodNotAllowed(ImageWorkflowError):
    status_code = 405


class UpstreamFailure(ImageWorkflowError):
    """A storage, inference or workflow engine call failed."""

    status_code = 500


class InstanceNotFoundError(UpstreamFailure):
    """No workflow instance exists for the given id."""


class ImageNotFoundError(UpstreamFailure):
    """The blob store has no object for the image key."""


class InvalidTransitionError(ImageWorkflowError):
    """A workflow tried to move between stages that are not connected."""


__all__ = [
    "ImageWorkflowError",
    "ValidationError",
    "NotFound",
    "MethodNotAllowed",
    "UpstreamFailure",
    "InstanceNotFoundError",
    "ImageNotFoundError",
    "InvalidTransitionError",
]
