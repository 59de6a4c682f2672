"""
Image model - one row per uploaded image submission.

tags and alt_text are derived fields written by the workflow only after
the matching approval gate was granted and inference succeeded.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin


class Image(Base, TimestampMixin):
    """An uploaded image keyed by the workflow instance that processes it."""

    __tablename__ = "images"

    instance_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    image_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    # Derived fields (set at most once)
    tags: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    alt_text: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Image {self.instance_id} key={self.image_key}>"
