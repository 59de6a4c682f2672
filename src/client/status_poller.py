"""
Status poller for image workflows.

Polls the status route for each tracked instance on a fixed interval and
reports a normalized UploadedImage snapshot to a callback:

- non-terminal status: reported verbatim, polling continues
- complete: alt text and tags are fetched, then one snapshot carrying both
  is reported and polling stops
- any failed request or error indicator: 'error' is reported once and
  polling stops

Each instance is polled by a single task, so ticks for one instance never
overlap and callbacks arrive in tick order.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from src.client.api_client import ImageWorkflowClient
from src.config import get_settings
from src.errors import UpstreamFailure
from src.kernel.models.workflow import InstanceStatus
from src.logging_config import get_logger
from src.schemas.image import UploadedImage

logger = get_logger(__name__)

StatusCallback = Callable[[UploadedImage], Union[None, Awaitable[None]]]


class StatusPoller:
    """
    Owns one polling task per instance id.

    Usage:
        async with StatusPoller(on_update) as poller:
            poller.start_polling(instance_id, "cat.png")
            ...
        # leaving the block cancels every active poll
    """

    def __init__(
        self,
        on_status_update: StatusCallback,
        client: Optional[ImageWorkflowClient] = None,
        interval: Optional[float] = None,
    ):
        self.on_status_update = on_status_update
        self._owns_client = client is None
        self.client = client or ImageWorkflowClient()
        self.interval = interval if interval is not None else get_settings().poll_interval_seconds
        self._tasks: Dict[str, asyncio.Task] = {}

    async def __aenter__(self) -> "StatusPoller":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def start_polling(self, instance_id: str, file_name: str) -> None:
        """Poll instance_id, replacing any poll already running for it."""
        previous = self._tasks.get(instance_id)
        self._tasks[instance_id] = asyncio.create_task(
            self._run(instance_id, file_name), name=f"poll-{instance_id}"
        )
        if previous is not None and not previous.done():
            previous.cancel()
        logger.debug("Polling started", extra={"workflow_instance": instance_id})

    def stop_polling(self, instance_id: str) -> None:
        """Stop polling instance_id. No-op when it is not being polled."""
        task = self._tasks.pop(instance_id, None)
        if task is None:
            return
        # A tick that stops its own poll just exits after the current tick
        if task is not asyncio.current_task() and not task.done():
            task.cancel()

    def is_polling(self, instance_id: str) -> bool:
        return instance_id in self._tasks

    @property
    def active_polls(self) -> List[str]:
        return list(self._tasks)

    async def aclose(self) -> None:
        """Cancel every active poll and release the HTTP client."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()

    def _owns_slot(self, instance_id: str) -> bool:
        return self._tasks.get(instance_id) is asyncio.current_task()

    async def _run(self, instance_id: str, file_name: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                if not self._owns_slot(instance_id):
                    return
                finished = await self._poll_once(instance_id, file_name)
                if finished:
                    return
        finally:
            if self._owns_slot(instance_id):
                del self._tasks[instance_id]

    async def _poll_once(self, instance_id: str, file_name: str) -> bool:
        """Run one tick. Returns True when polling should stop."""
        try:
            data = await self.client.get_status(instance_id)
        except UpstreamFailure as e:
            logger.error("Error polling status: %s", e, extra={"workflow_instance": instance_id})
            await self._report_error(instance_id, file_name)
            return True

        status = data.get("status")
        if not status or data.get("error") or status == InstanceStatus.ERROR.value:
            logger.warning(
                "Workflow reported failure: %s", data.get("error") or status,
                extra={"workflow_instance": instance_id},
            )
            await self._report_error(instance_id, file_name)
            return True

        if status == InstanceStatus.COMPLETE.value:
            await self._report_results(instance_id, file_name)
            return True

        await self._emit(UploadedImage(file_name=file_name, status=status, instance_id=instance_id))
        return False

    async def _report_results(self, instance_id: str, file_name: str) -> None:
        try:
            alt_text = await self.client.get_alt_text(instance_id)
            tags = await self.client.get_tags(instance_id)
        except UpstreamFailure as e:
            logger.error("Error fetching AI results: %s", e, extra={"workflow_instance": instance_id})
            await self._report_error(instance_id, file_name)
            return

        await self._emit(
            UploadedImage(
                file_name=file_name,
                status=InstanceStatus.COMPLETE.value,
                instance_id=instance_id,
                tags=tags,
                alt_text=alt_text,
            )
        )

    async def _report_error(self, instance_id: str, file_name: str) -> None:
        await self._emit(
            UploadedImage(file_name=file_name, status=InstanceStatus.ERROR.value, instance_id=instance_id)
        )

    async def _emit(self, snapshot: UploadedImage) -> None:
        try:
            result: Any = self.on_status_update(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Status callback failed", extra={"workflow_instance": snapshot.instance_id})
