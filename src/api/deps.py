"""
FastAPI dependencies for database sessions and workflow collaborators.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db
from src.kernel.storage.blob_store import BlobStore
from src.orchestration.engine import WorkflowEngine


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_workflow_engine(request: Request) -> WorkflowEngine:
    """Engine created by the application lifespan."""
    return request.app.state.workflow_engine


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


Engine = Annotated[WorkflowEngine, Depends(get_workflow_engine)]
Blobs = Annotated[BlobStore, Depends(get_blob_store)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
