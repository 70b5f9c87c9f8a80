"""
Remote object storage used as the second tier of the artifact cache.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from google.cloud import storage as gcs


class BlobStore(Protocol):
    """Minimal async interface the artifact cache needs from a remote store."""

    async def exists(self, path: str) -> bool: ...

    async def download(self, path: str) -> bytes: ...

    async def upload(self, path: str, data: bytes, content_type: str) -> None: ...


class GCSBlobStore:
    """
    Google Cloud Storage backed :class:`BlobStore`.

    Parameters
    ----------
    bucket_name:
        Bucket holding the replicated artifacts.
    prefix:
        Optional folder prepended to every object name.
    client:
        Optional pre-configured :class:`google.cloud.storage.Client`. Mainly useful
        for testing.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        prefix: str = "",
        client: gcs.Client | None = None,
    ) -> None:
        if not bucket_name:
            raise ValueError("A bucket name is required for the GCS blob store.")
        self._client = client or gcs.Client()
        self._bucket = self._client.bucket(bucket_name)
        self._prefix = prefix.strip("/")

    def object_name(self, path: str) -> str:
        path = path.lstrip("/")
        return f"{self._prefix}/{path}" if self._prefix else path

    async def exists(self, path: str) -> bool:
        blob = self._bucket.blob(self.object_name(path))
        return await asyncio.to_thread(blob.exists)

    async def download(self, path: str) -> bytes:
        blob = self._bucket.blob(self.object_name(path))
        return await asyncio.to_thread(blob.download_as_bytes)

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        blob = self._bucket.blob(self.object_name(path))
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
