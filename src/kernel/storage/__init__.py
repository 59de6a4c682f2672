"""
Storage services: image metadata repository and binary blob store.
"""

from src.kernel.storage.blob_store import BlobStore, LocalBlobStore
from src.kernel.storage.image_repository import ImageRepository

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "ImageRepository",
]
