# src/cuizly_sync/storage.py
from __future__ import annotations

"""
storage.py

Thin wrapper over Supabase Storage for user uploads (avatars).
Failures are raised as RemoteStoreError.
"""

import inspect
from typing import Any

from cuizly_sync.errors import RemoteStoreError
from cuizly_sync.logging_utils import get_logger

logger = get_logger("storage")


class ObjectStorage:
    def __init__(self, client: Any, bucket: str = "avatars") -> None:
        self.client = client
        self.bucket = bucket

    def _bucket(self) -> Any:
        return self.client.storage.from_(self.bucket)

    async def upload(self, path: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
        try:
            await self._bucket().upload(
                path,
                data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Upload of %s to bucket %s failed: %s",
                path,
                self.bucket,
                exc,
                extra={
                    "invoking_func": "ObjectStorage.upload",
                    "invoking_purpose": "Store a user file",
                    "next_step": "Report the failure to the caller",
                    "resolution": "Check bucket policies and file size",
                },
            )
            raise RemoteStoreError(f"Upload of {path} failed: {exc}") from exc
        return await self.get_public_url(path)

    async def get_public_url(self, path: str) -> str:
        url = self._bucket().get_public_url(path)
        if inspect.isawaitable(url):
            url = await url
        return str(url)
