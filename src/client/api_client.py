"""
Async HTTP client for the image workflow service.

Any transport failure, non-success status or undecodable body surfaces as
UpstreamFailure so callers handle one error type.
"""

from typing import Any, Dict, Optional

import httpx

from src.config import get_settings
from src.errors import UpstreamFailure
from src.kernel.events.event_types import ApprovalEventType
from src.logging_config import get_logger

logger = get_logger(__name__)


class ImageWorkflowClient:
    """
    Thin wrapper over httpx.AsyncClient for the service routes.

    Usage:
        async with ImageWorkflowClient("http://localhost:8000") as client:
            created = await client.upload("cat.png", data)
            await client.approve(ApprovalEventType.TAG_APPROVAL, created["id"], True)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout or settings.request_timeout_seconds,
        )

    async def __aenter__(self) -> "ImageWorkflowClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upload(
        self,
        file_name: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """Start a workflow for an image; returns {id, details, success, message}."""
        return await self._request(
            "POST", "/", files={"image": (file_name, data, content_type)}
        )

    async def get_status(self, instance_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/", params={"instanceId": instance_id})

    async def get_tags(self, instance_id: str) -> Optional[str]:
        data = await self._request("GET", "/tags", params={"instanceId": instance_id})
        return data.get("tags")

    async def get_alt_text(self, instance_id: str) -> Optional[str]:
        data = await self._request("GET", "/alttext", params={"instanceId": instance_id})
        return data.get("altText")

    async def approve(self, gate: ApprovalEventType, instance_id: str, approved: bool) -> None:
        """Send an accept/reject decision for one AI gate."""
        await self._request(
            "POST",
            f"/{gate.value}",
            json={"instanceId": instance_id, "approved": approved},
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"{method} {url} failed: {e}") from e

        if response.is_error:
            raise UpstreamFailure(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFailure(f"{method} {url} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise UpstreamFailure(f"{method} {url} returned an unexpected body")
        return data
