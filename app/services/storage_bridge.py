"""Blob store capability backed by Cloudflare R2."""
from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass
from typing import Protocol

from app.services.r2_client import make_key, put_bytes

_DEFAULT_EXT = "png"


@dataclass(frozen=True)
class StoredBlob:
    key: str
    url: str


class BlobStore(Protocol):
    async def store(self, data: bytes, folder: str, content_type: str) -> StoredBlob:
        ...


def _extension_for(content_type: str) -> str:
    guessed = mimetypes.guess_extension(content_type or "") or f".{_DEFAULT_EXT}"
    return ".jpg" if guessed in {".jpe", ".jpeg"} else guessed


def store_image_and_url(data: bytes, *, folder: str, content_type: str = "image/png") -> StoredBlob:
    """Persist *data* to Cloudflare R2 and return its key and URL."""

    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("image payload must be bytes")

    storage_key = make_key(folder, f"image{_extension_for(content_type)}")
    # put_bytes returns None both on upload failure and when no public base is set
    url = put_bytes(storage_key, bytes(data), content_type=content_type)
    if not url:
        raise RuntimeError(f"Failed to store image at key={storage_key}")
    return StoredBlob(key=storage_key, url=url)


class R2BlobStore:
    """Async facade over the blocking boto3 upload."""

    async def store(self, data: bytes, folder: str, content_type: str) -> StoredBlob:
        return await asyncio.to_thread(
            store_image_and_url, data, folder=folder, content_type=content_type
        )


__all__ = ["BlobStore", "R2BlobStore", "StoredBlob", "store_image_and_url"]
