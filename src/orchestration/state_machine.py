"""
State machine for the image tagging workflow.

One instance per uploaded image. The workflow records the image, then
passes through two approval gates (tags, then alt text). Each gate waits
for a human decision; an approved gate runs inference on the stored image
and persists the result, a denied or timed-out gate is skipped.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.ai.inference import InferenceClient
from src.ai.prompts import AI_ALT_TEXT_CONFIG, AI_TAGS_CONFIG
from src.ai.types import InferenceConfig, InferenceInput
from src.config import Settings, get_settings
from src.errors import ImageNotFoundError, InvalidTransitionError, ValidationError
from src.kernel.events.event_types import ApprovalEventType, ApprovalPayload
from src.kernel.storage.blob_store import BlobStore
from src.kernel.storage.image_repository import ImageRepository
from src.logging_config import get_logger
from src.orchestration.engine import StepContext, WorkflowEngine, WorkflowRun

logger = get_logger(__name__)


class WorkflowStage(str, Enum):
    """Stages of one image submission."""

    STARTED = "started"
    AWAITING_TAG_APPROVAL = "awaiting_tag_approval"
    TAGGING_IN_PROGRESS = "tagging_in_progress"
    TAG_SKIPPED = "tag_skipped"
    AWAITING_ALTTEXT_APPROVAL = "awaiting_alttext_approval"
    ALTTEXT_IN_PROGRESS = "alttext_in_progress"
    ALTTEXT_SKIPPED = "alttext_skipped"
    FINISHED = "finished"


# Valid transitions: from_stage -> reachable stages
_TRANSITIONS: Dict[WorkflowStage, Set[WorkflowStage]] = {
    WorkflowStage.STARTED: {WorkflowStage.AWAITING_TAG_APPROVAL},
    WorkflowStage.AWAITING_TAG_APPROVAL: {WorkflowStage.TAGGING_IN_PROGRESS, WorkflowStage.TAG_SKIPPED},
    WorkflowStage.TAGGING_IN_PROGRESS: {WorkflowStage.AWAITING_ALTTEXT_APPROVAL},
    WorkflowStage.TAG_SKIPPED: {WorkflowStage.AWAITING_ALTTEXT_APPROVAL},
    WorkflowStage.AWAITING_ALTTEXT_APPROVAL: {WorkflowStage.ALTTEXT_IN_PROGRESS, WorkflowStage.ALTTEXT_SKIPPED},
    WorkflowStage.ALTTEXT_IN_PROGRESS: {WorkflowStage.FINISHED},
    WorkflowStage.ALTTEXT_SKIPPED: {WorkflowStage.FINISHED},
    WorkflowStage.FINISHED: set(),
}


def valid_transitions(from_stage: WorkflowStage) -> List[WorkflowStage]:
    """Return stages reachable in one step from from_stage."""
    return sorted(_TRANSITIONS.get(from_stage, set()), key=lambda s: s.value)


def can_transition(from_stage: WorkflowStage, to_stage: WorkflowStage) -> bool:
    return to_stage in _TRANSITIONS.get(from_stage, set())


@dataclass(frozen=True)
class ApprovalGate:
    """One human-approved AI branch of the workflow."""

    event_type: ApprovalEventType
    config: InferenceConfig
    field: str
    awaiting: WorkflowStage
    in_progress: WorkflowStage
    skipped: WorkflowStage
    wait_step: str
    generate_step: str
    persist_step: str


TAG_GATE = ApprovalGate(
    event_type=ApprovalEventType.TAG_APPROVAL,
    config=AI_TAGS_CONFIG,
    field="tags",
    awaiting=WorkflowStage.AWAITING_TAG_APPROVAL,
    in_progress=WorkflowStage.TAGGING_IN_PROGRESS,
    skipped=WorkflowStage.TAG_SKIPPED,
    wait_step="Wait for AI Image tagging approval",
    generate_step="Generate AI tags",
    persist_step="Update DB with AI tags",
)

ALT_TEXT_GATE = ApprovalGate(
    event_type=ApprovalEventType.ALTTEXT_APPROVAL,
    config=AI_ALT_TEXT_CONFIG,
    field="alt_text",
    awaiting=WorkflowStage.AWAITING_ALTTEXT_APPROVAL,
    in_progress=WorkflowStage.ALTTEXT_IN_PROGRESS,
    skipped=WorkflowStage.ALTTEXT_SKIPPED,
    wait_step="Wait for AI Image alt text approval",
    generate_step="Generate AI Alt Text",
    persist_step="Update DB with AI Alt text",
)

GATES = (TAG_GATE, ALT_TEXT_GATE)


def is_approved(payload: Optional[Dict[str, Any]]) -> bool:
    """A gate opens only for an explicit {"approved": true}; None means timeout."""
    if not payload:
        return False
    try:
        return ApprovalPayload.model_validate(payload).approved
    except PayloadValidationError:
        logger.warning("Ignoring malformed approval payload: %r", payload)
        return False


class ImageTaggingWorkflow:
    """Workflow definition run by the engine for every uploaded image."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        inference: InferenceClient,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.blob_store = blob_store
        self.inference = inference
        self.settings = settings or get_settings()

    async def run(self, event: WorkflowRun, step: StepContext) -> Dict[str, Optional[str]]:
        image_key = event.params.get("image_key")
        if not image_key:
            raise ValidationError("Workflow params missing image_key", instance_id=event.instance_id)

        stage = WorkflowStage.STARTED
        await step.report_stage(stage.value)

        await step.do(
            "Insert image name into database",
            partial(self._insert_image, image_key, event.instance_id),
        )

        derived: Dict[str, Optional[str]] = {gate.field: None for gate in GATES}
        for gate in GATES:
            stage = await self._advance(step, stage, gate.awaiting)
            payload = await step.wait_for_event(
                gate.wait_step,
                gate.event_type.value,
                timeout=self.settings.approval_timeout_seconds,
            )

            if not is_approved(payload):
                stage = await self._advance(step, stage, gate.skipped)
                continue

            stage = await self._advance(step, stage, gate.in_progress)
            description = await step.do(
                gate.generate_step,
                partial(self._describe_image, image_key, gate.config),
            )
            await step.do(
                gate.persist_step,
                partial(self._persist, gate, event.instance_id, description),
            )
            derived[gate.field] = description

        await self._advance(step, stage, WorkflowStage.FINISHED)
        return derived

    async def _advance(
        self,
        step: StepContext,
        from_stage: WorkflowStage,
        to_stage: WorkflowStage,
    ) -> WorkflowStage:
        if not can_transition(from_stage, to_stage):
            raise InvalidTransitionError(
                f"Invalid transition: {from_stage.value} -> {to_stage.value}",
                instance_id=step.instance_id,
            )
        await step.report_stage(to_stage.value)
        logger.debug("Stage %s -> %s", from_stage.value, to_stage.value)
        return to_stage

    async def _insert_image(self, image_key: str, instance_id: str) -> None:
        async with self.session_maker() as session, session.begin():
            await ImageRepository(session).insert_image(image_key, instance_id)

    async def _describe_image(self, image_key: str, config: InferenceConfig) -> str:
        image = await self.blob_store.get(image_key)
        if image is None:
            raise ImageNotFoundError("Image not found", image_key=image_key)

        response = await self.inference.run(
            self.settings.ai_model,
            InferenceInput(image=image, prompt=config.prompt, max_tokens=config.max_tokens),
        )
        return response["description"]

    async def _persist(self, gate: ApprovalGate, instance_id: str, description: str) -> None:
        async with self.session_maker() as session, session.begin():
            repo = ImageRepository(session)
            if gate.field == "tags":
                await repo.update_tags(instance_id, description)
            else:
                await repo.update_alt_text(instance_id, description)


def create_workflow_engine(
    session_maker: async_sessionmaker[AsyncSession],
    blob_store: BlobStore,
    settings: Optional[Settings] = None,
    inference: Optional[InferenceClient] = None,
) -> WorkflowEngine:
    """Wire the image workflow to its collaborators and an engine."""
    settings = settings or get_settings()
    workflow = ImageTaggingWorkflow(
        session_maker,
        blob_store,
        inference or InferenceClient(settings),
        settings=settings,
    )
    return WorkflowEngine(session_maker, workflow, settings=settings)
