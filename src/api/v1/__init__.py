"""
API v1 routes.

Mounted at the application root: the browser client addresses the
workflow endpoints directly under the service origin.
"""

from fastapi import APIRouter

from src.api.v1 import images

router = APIRouter()

router.include_router(images.router, tags=["Images"])
