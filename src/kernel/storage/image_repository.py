"""
Image repository - persistence of submissions and their derived fields.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.errors import UpstreamFailure
from src.kernel.models.image import Image
from src.logging_config import get_logger

logger = get_logger(__name__)


class ImageRepository:
    """
    Service for image submission records, keyed by workflow instance id.

    Writes are idempotent so a re-attempted workflow step that repeats one
    of them leaves the row in the same state.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_image(self, instance_id: str) -> Optional[Image]:
        result = await self.session.execute(
            select(Image).where(Image.instance_id == instance_id)
        )
        return result.scalar_one_or_none()

    async def insert_image(self, image_key: str, instance_id: str) -> Image:
        """Record a new submission. Returns the existing row on replay."""
        existing = await self.get_image(instance_id)
        if existing:
            return existing

        image = Image(instance_id=instance_id, image_key=image_key)
        self.session.add(image)
        await self.session.flush()
        logger.info("Image recorded", extra={"image_key": image_key})
        return image

    async def update_tags(self, instance_id: str, tags: str) -> Image:
        image = await self._require(instance_id)
        image.tags = tags
        return image

    async def update_alt_text(self, instance_id: str, alt_text: str) -> Image:
        image = await self._require(instance_id)
        image.alt_text = alt_text
        return image

    async def get_tags(self, instance_id: str) -> Optional[str]:
        """Tag text for an instance; None when unset or unknown."""
        image = await self.get_image(instance_id)
        return image.tags if image else None

    async def get_alt_text(self, instance_id: str) -> Optional[str]:
        """Alt text for an instance; None when unset or unknown."""
        image = await self.get_image(instance_id)
        return image.alt_text if image else None

    async def _require(self, instance_id: str) -> Image:
        image = await self.get_image(instance_id)
        if image is None:
            raise UpstreamFailure("Image record not found", instance_id=instance_id)
        return image
