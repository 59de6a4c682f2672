"""Image submission, status, derived-field and approval endpoints."""

from typing import Optional

from fastapi import APIRouter, Query, Request
from starlette.datastructures import UploadFile

from src.api.deps import Blobs, DbSession, Engine
from src.errors import ImageWorkflowError, UpstreamFailure, ValidationError
from src.kernel.events.event_types import ApprovalEventType
from src.kernel.models.base import generate_key
from src.kernel.storage.image_repository import ImageRepository
from src.logging_config import get_logger
from src.schemas.image import (
    AltTextResponse,
    ApprovalRequest,
    ApprovalResponse,
    TagsResponse,
    UploadResponse,
)
from src.schemas.workflow import WorkflowStatus

logger = get_logger(__name__)

router = APIRouter()


def _require_instance_id(instance_id: Optional[str]) -> str:
    if not instance_id or not instance_id.strip():
        raise ValidationError("Missing instanceId parameter")
    return instance_id.strip()


@router.post("/", response_model=UploadResponse)
async def create_image_workflow(request: Request, engine: Engine, blob_store: Blobs):
    """Store an uploaded image and start its tagging workflow."""
    content_type = request.headers.get("content-type") or ""
    if "multipart/form-data" not in content_type:
        raise ValidationError("Invalid content type. Expected multipart/form-data")

    form = await request.form()
    try:
        image = form.get("image")
        if not isinstance(image, UploadFile):
            raise ValidationError("Missing or invalid image file")

        data = await image.read()
        if not data:
            raise ValidationError("Missing or invalid image file")

        image_key = generate_key()
        await blob_store.put(image_key, data)
        instance = await engine.create(params={"image_key": image_key})
        details = await instance.status()
    except ImageWorkflowError:
        raise
    except Exception as e:
        logger.exception("Error processing image upload: %s", e)
        raise UpstreamFailure("Error processing image upload") from e
    finally:
        await form.close()

    logger.info(
        "Image upload started",
        extra={"workflow_instance": instance.id, "image_key": image_key, "size": len(data)},
    )
    return UploadResponse(id=instance.id, details=details)


@router.get("/", response_model=WorkflowStatus)
async def get_workflow_status(
    engine: Engine,
    instance_id: Optional[str] = Query(default=None, alias="instanceId"),
):
    """Current status of an image workflow."""
    instance_id = _require_instance_id(instance_id)
    try:
        instance = await engine.get(instance_id)
        return await instance.status()
    except Exception as e:
        logger.warning("Error getting workflow status: %s", e, extra={"workflow_instance": instance_id})
        raise UpstreamFailure("Error getting workflow status", instance_id=instance_id) from e


@router.get("/tags", response_model=TagsResponse)
async def get_image_tags(
    db: DbSession,
    instance_id: Optional[str] = Query(default=None, alias="instanceId"),
):
    """Persisted AI tags for an image (null until tagging ran)."""
    instance_id = _require_instance_id(instance_id)
    try:
        tags = await ImageRepository(db).get_tags(instance_id)
    except Exception as e:
        logger.exception("Error fetching tags: %s", e)
        raise UpstreamFailure("Error fetching tags", instance_id=instance_id) from e
    return TagsResponse(instance_id=instance_id, tags=tags)


@router.get("/alttext", response_model=AltTextResponse)
async def get_image_alt_text(
    db: DbSession,
    instance_id: Optional[str] = Query(default=None, alias="instanceId"),
):
    """Persisted AI alt text for an image (null until alt text ran)."""
    instance_id = _require_instance_id(instance_id)
    try:
        alt_text = await ImageRepository(db).get_alt_text(instance_id)
    except Exception as e:
        logger.exception("Error fetching alt text: %s", e)
        raise UpstreamFailure("Error fetching alt text", instance_id=instance_id) from e
    return AltTextResponse(instance_id=instance_id, alt_text=alt_text)


async def _send_approval(
    engine: Engine,
    event_type: ApprovalEventType,
    data: ApprovalRequest,
) -> ApprovalResponse:
    try:
        instance = await engine.get(data.instance_id)
        await instance.send_event(event_type.value, {"approved": data.approved})
    except Exception as e:
        logger.warning("Error processing approval: %s", e, extra={"workflow_instance": data.instance_id})
        raise UpstreamFailure("Error processing approval", instance_id=data.instance_id) from e

    logger.info(
        "Approval '%s' recorded: %s", event_type.value, data.approved,
        extra={"workflow_instance": data.instance_id},
    )
    return ApprovalResponse(success=True)


@router.post("/" + ApprovalEventType.TAG_APPROVAL.value, response_model=ApprovalResponse)
async def approve_ai_tagging(data: ApprovalRequest, engine: Engine):
    """Deliver the tag-approval decision to a waiting workflow."""
    return await _send_approval(engine, ApprovalEventType.TAG_APPROVAL, data)


@router.post("/" + ApprovalEventType.ALTTEXT_APPROVAL.value, response_model=ApprovalResponse)
async def approve_ai_alt_text(data: ApprovalRequest, engine: Engine):
    """Deliver the alt-text-approval decision to a waiting workflow."""
    return await _send_approval(engine, ApprovalEventType.ALTTEXT_APPROVAL, data)
