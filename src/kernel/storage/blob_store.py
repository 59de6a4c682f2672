"""
Blob storage for uploaded image bytes.

LocalBlobStore keeps one file per key under a root directory. File I/O is
pushed to a worker thread so it never blocks the event loop.
"""

import asyncio
import re
from pathlib import Path
from typing import Optional, Protocol

from src.errors import ValidationError
from src.logging_config import get_logger

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class BlobStore(Protocol):
    """Interface consumed by the upload route and the workflow."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def put(self, key: str, data: bytes) -> None:
        ...


class LocalBlobStore:
    """Filesystem-backed blob store."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        # Keys are generated server-side; reject anything path-like anyway
        if not _KEY_PATTERN.match(key):
            raise ValidationError(f"Invalid blob key: {key!r}")
        return self.root / key

    async def put(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def _write() -> None:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".part")
            tmp.write_bytes(data)
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.debug("Stored blob", extra={"blob_key": key, "size": len(data)})

    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent."""
        path = self._path(key)

        def _read() -> Optional[bytes]:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        return await asyncio.to_thread(_read)
