"""
Durable workflow engine.

Runs one asyncio task per workflow instance. Every named step's output is
persisted, so a re-attempted or resumed run replays completed steps from the
database instead of executing them again. Waiting for an approval event is
a suspension on an in-process signal bounded by a persisted deadline.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple, TypeVar

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings, get_settings
from src.errors import InstanceNotFoundError
from src.kernel.events.event_store import EventStore
from src.kernel.models.base import as_utc, utcnow
from src.kernel.models.workflow import InstanceStatus, StepStatus, WorkflowInstance, WorkflowStep
from src.logging_config import get_logger, instance_id_var
from src.schemas.workflow import WorkflowStatus

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class WorkflowRun:
    """The trigger of one workflow run: instance id plus creation params."""

    instance_id: str
    params: Dict[str, Any] = field(default_factory=dict)


class Workflow(Protocol):
    async def run(self, event: WorkflowRun, step: "StepContext") -> Any:
        ...


class StepContext:
    """
    Step API handed to a running workflow.

    Usage:
        result = await step.do("Generate AI tags", generate)
        payload = await step.wait_for_event("Wait for approval", "approval-for-ai-tagging", 300)
    """

    def __init__(self, engine: "WorkflowEngine", instance_id: str):
        self._engine = engine
        self.instance_id = instance_id

    async def do(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn once and cache its JSON-serializable result under name.

        Failures are retried with exponential backoff up to the configured
        retry limit; the last failure propagates.
        """
        cached = await self._engine._load_step(self.instance_id, name)
        if cached is not None and cached.status == StepStatus.COMPLETE:
            logger.debug("Replaying cached step", extra={"step": name})
            return cached.output

        settings = self._engine.settings
        delay = settings.step_retry_delay_seconds
        attempt = 0
        while True:
            attempt += 1
            await self._engine._begin_step(self.instance_id, name, count_attempt=True)
            try:
                result = await fn()
            except Exception as e:
                if attempt > settings.step_retry_limit:
                    logger.error(
                        "Step '%s' failed after %d attempt(s): %s", name, attempt, e,
                        extra={"step": name},
                    )
                    raise
                logger.warning(
                    "Step '%s' attempt %d failed: %s. Retrying in %.1fs", name, attempt, e, delay,
                    extra={"step": name},
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            await self._engine._complete_step(self.instance_id, name, result)
            return result

    async def wait_for_event(
        self,
        name: str,
        event_type: str,
        timeout: float,
    ) -> Optional[Dict[str, Any]]:
        """
        Wait for an event of event_type, or for timeout seconds to pass.

        Returns the event payload, or None when the deadline passed first.
        An event delivered before the wait began is picked up immediately.
        """
        cached = await self._engine._load_step(self.instance_id, name)
        if cached is not None and cached.status == StepStatus.COMPLETE:
            return (cached.output or {}).get("payload")

        record = await self._engine._begin_step(self.instance_id, name, count_attempt=False)
        deadline = as_utc(record.started_at) + timedelta(seconds=timeout)
        signal = self._engine._signal(self.instance_id, event_type)

        while True:
            # Clear before checking the inbox so a delivery between the
            # check and the wait still wakes us.
            signal.clear()
            found, payload = await self._engine._take_event_and_complete(
                self.instance_id, name, event_type
            )
            if found:
                logger.info("Received event '%s'", event_type, extra={"step": name})
                return payload

            remaining = (deadline - utcnow()).total_seconds()
            if remaining <= 0:
                await self._engine._complete_step(
                    self.instance_id, name, {"payload": None, "timed_out": True}
                )
                logger.info("Timed out waiting for '%s'", event_type, extra={"step": name})
                return None

            try:
                await asyncio.wait_for(signal.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def report_stage(self, stage: str) -> None:
        """Publish the workflow's current stage on the instance status."""
        await self._engine._set_stage(self.instance_id, stage)


class InstanceHandle:
    """Client-side handle on one workflow instance."""

    def __init__(self, engine: "WorkflowEngine", instance_id: str):
        self._engine = engine
        self.id = instance_id

    async def status(self) -> WorkflowStatus:
        return await self._engine.get_status(self.id)

    async def send_event(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        await self._engine.send_event(self.id, event_type, payload)


class WorkflowEngine:
    """
    In-process durable step executor.

    One task per instance; instances share nothing except the database.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        workflow: Workflow,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.workflow = workflow
        self.settings = settings or get_settings()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._signals: Dict[Tuple[str, str], asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, params: Optional[Dict[str, Any]] = None) -> InstanceHandle:
        """Persist a queued instance and start running it."""
        async with self.session_maker() as session, session.begin():
            instance = WorkflowInstance(params=params or {}, status=InstanceStatus.QUEUED)
            session.add(instance)
            await session.flush()
            instance_id = instance.id

        logger.info("Workflow instance created", extra={"workflow_instance": instance_id})
        self._launch(instance_id)
        return InstanceHandle(self, instance_id)

    async def get(self, instance_id: str) -> InstanceHandle:
        async with self.session_maker() as session:
            instance = await session.get(WorkflowInstance, instance_id)
        if instance is None:
            raise InstanceNotFoundError("Workflow instance not found", instance_id=instance_id)
        return InstanceHandle(self, instance_id)

    async def get_status(self, instance_id: str) -> WorkflowStatus:
        async with self.session_maker() as session:
            instance = await session.get(WorkflowInstance, instance_id)
        if instance is None:
            raise InstanceNotFoundError("Workflow instance not found", instance_id=instance_id)
        return WorkflowStatus(
            status=InstanceStatus(instance.status),
            stage=instance.stage,
            error=instance.error,
            output=instance.output,
        )

    async def send_event(
        self,
        instance_id: str,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Persist an event for an instance and wake any matching waiter."""
        async with self.session_maker() as session, session.begin():
            instance = await session.get(WorkflowInstance, instance_id)
            if instance is None:
                raise InstanceNotFoundError("Workflow instance not found", instance_id=instance_id)
            await EventStore(session).deliver(instance_id, event_type, payload)

        signal = self._signals.get((instance_id, event_type))
        if signal is not None:
            signal.set()
        logger.info(
            "Event '%s' delivered", event_type,
            extra={"workflow_instance": instance_id},
        )

    async def resume_pending(self) -> int:
        """Relaunch instances left queued or running by a previous process."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(WorkflowInstance.id).where(
                    WorkflowInstance.status.in_(
                        [InstanceStatus.QUEUED.value, InstanceStatus.RUNNING.value]
                    )
                )
            )
            pending = [row[0] for row in result.all()]

        for instance_id in pending:
            if instance_id not in self._tasks:
                self._launch(instance_id)
        if pending:
            logger.info("Resumed %d workflow instance(s)", len(pending))
        return len(pending)

    async def wait_for(self, instance_id: str, timeout: Optional[float] = None) -> WorkflowStatus:
        """Wait until the instance's task finishes (or timeout), then report status."""
        task = self._tasks.get(instance_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.get_status(instance_id)

    @property
    def active_instances(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel running instances; they stay resumable."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._signals.clear()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _launch(self, instance_id: str) -> None:
        self._tasks[instance_id] = asyncio.create_task(
            self._execute(instance_id), name=f"workflow-{instance_id}"
        )

    async def _execute(self, instance_id: str) -> None:
        token = instance_id_var.set(instance_id)
        try:
            async with self.session_maker() as session, session.begin():
                instance = await session.get(WorkflowInstance, instance_id)
                params = dict(instance.params or {})
                instance.status = InstanceStatus.RUNNING

            output = await self.workflow.run(
                WorkflowRun(instance_id=instance_id, params=params),
                StepContext(self, instance_id),
            )
            await self._finish(instance_id, InstanceStatus.COMPLETE, output=output)
            logger.info("Workflow instance complete")
        except asyncio.CancelledError:
            logger.info("Workflow instance suspended")
            raise
        except Exception as e:
            logger.exception("Workflow instance failed: %s", e)
            await self._finish(instance_id, InstanceStatus.ERROR, error=str(e))
        finally:
            instance_id_var.reset(token)
            if self._tasks.get(instance_id) is asyncio.current_task():
                del self._tasks[instance_id]
            for key in [k for k in self._signals if k[0] == instance_id]:
                del self._signals[key]

    async def _finish(
        self,
        instance_id: str,
        status: InstanceStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        async with self.session_maker() as session, session.begin():
            instance = await session.get(WorkflowInstance, instance_id)
            instance.status = status
            instance.output = output
            instance.error = error

    def _signal(self, instance_id: str, event_type: str) -> asyncio.Event:
        key = (instance_id, event_type)
        if key not in self._signals:
            self._signals[key] = asyncio.Event()
        return self._signals[key]

    # ------------------------------------------------------------------
    # Step persistence
    # ------------------------------------------------------------------

    async def _load_step(self, instance_id: str, name: str) -> Optional[WorkflowStep]:
        async with self.session_maker() as session:
            return await self._find_step(session, instance_id, name)

    async def _begin_step(self, instance_id: str, name: str, count_attempt: bool) -> WorkflowStep:
        async with self.session_maker() as session, session.begin():
            record = await self._find_step(session, instance_id, name)
            if record is None:
                record = WorkflowStep(
                    instance_id=instance_id,
                    name=name,
                    status=StepStatus.PENDING,
                    attempts=0,
                    started_at=utcnow(),
                )
                session.add(record)
            if count_attempt:
                record.attempts += 1
            await session.flush()
            return record

    async def _complete_step(self, instance_id: str, name: str, output: Any) -> None:
        async with self.session_maker() as session, session.begin():
            record = await self._find_step(session, instance_id, name)
            self._mark_complete(record, output)

    async def _take_event_and_complete(
        self,
        instance_id: str,
        name: str,
        event_type: str,
    ) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """
        Consume the oldest pending event of a type and complete the wait
        step with its payload; (found, payload).

        Both writes share one transaction: an interrupted wait leaves the
        event in the inbox for the replay.
        """
        async with self.session_maker() as session, session.begin():
            store = EventStore(session)
            event = await store.next_pending(instance_id, event_type)
            if event is None:
                return False, None
            await store.consume(event)
            payload = dict(event.payload or {})
            record = await self._find_step(session, instance_id, name)
            self._mark_complete(record, {"payload": payload, "timed_out": False})
            return True, payload

    @staticmethod
    def _mark_complete(record: WorkflowStep, output: Any) -> None:
        record.status = StepStatus.COMPLETE
        record.output = output
        record.completed_at = utcnow()

    async def _set_stage(self, instance_id: str, stage: str) -> None:
        async with self.session_maker() as session, session.begin():
            instance = await session.get(WorkflowInstance, instance_id)
            instance.stage = stage

    @staticmethod
    async def _find_step(session: AsyncSession, instance_id: str, name: str) -> Optional[WorkflowStep]:
        result = await session.execute(
            select(WorkflowStep).where(
                and_(WorkflowStep.instance_id == instance_id, WorkflowStep.name == name)
            )
        )
        return result.scalar_one_or_none()
