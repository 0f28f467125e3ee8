from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from supabase import Client

from cakegenie.config import UPLOAD_PREFIX
from cakegenie.domain.errors import NetworkError, StorageError
from cakegenie.infrastructure.database.supabase_client import is_disabled, require_client

logger = logging.getLogger("cakegenie.storage")


@dataclass
class StoredObject:
    path: str
    public_url: str
    content_type: str
    size: int


def build_upload_path(ext: str, now_ms: int | None = None) -> str:
    """Collision-resistant object path: ``uploads/{unixMillis}-{token}.{ext}``."""
    ext = (ext or "jpg").lower().lstrip(".")
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{UPLOAD_PREFIX}/{now_ms}-{uuid.uuid4().hex[:7]}.{ext}"


class SupabaseStorage:
    """Storage adapter for Supabase Storage with a local fake fallback."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "uploadopenai")
        self.disabled = is_disabled()
        self.local_dir = Path(os.getenv("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage"))
        if self.disabled:
            self.local_dir.mkdir(parents=True, exist_ok=True)

    async def put(self, path: str, data: bytes, content_type: str) -> StoredObject:
        return await asyncio.to_thread(self.put_sync, path, data, content_type)

    def put_sync(self, path: str, data: bytes, content_type: str) -> StoredObject:
        if self.disabled:
            # local fake storage
            full_path = self.local_dir / path
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
            return StoredObject(path=path, public_url=self.get_public_url(path), content_type=content_type, size=len(data))
        client = require_client(self.client)
        try:  # pragma: no cover - network
            res = client.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": content_type},
            )
        except httpx.TransportError as exc:  # pragma: no cover
            raise NetworkError(f"Storage upload failed: {exc}") from exc
        except Exception as exc:  # pragma: no cover
            raise StorageError(f"Storage upload failed: {exc}") from exc
        stored_path = getattr(res, "path", None) or path
        return StoredObject(
            path=stored_path,
            public_url=self.get_public_url(stored_path),
            content_type=content_type,
            size=len(data),
        )

    def get_public_url(self, path: str) -> str:
        if self.disabled:
            return f"/local-storage/{path}"
        client = require_client(self.client)
        try:  # pragma: no cover - network
            return client.storage.from_(self.bucket).get_public_url(path)
        except Exception as exc:  # pragma: no cover
            raise StorageError(f"Public URL lookup failed: {exc}") from exc

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self.delete_sync, path)

    def delete_sync(self, path: str) -> None:
        if self.disabled:
            full_path = self.local_dir / path
            if full_path.exists():
                full_path.unlink()
            return
        client = require_client(self.client)
        try:  # pragma: no cover - network
            client.storage.from_(self.bucket).remove([path])
        except Exception as exc:  # pragma: no cover
            raise StorageError(f"Storage delete failed: {exc}") from exc
