"""
Common schema types used across the API.
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
    ai_configured: bool = False
    active_workflows: int = 0
