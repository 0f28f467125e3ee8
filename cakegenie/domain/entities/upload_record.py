from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class UploadRow:
    """Row inserted into the pricing table for a freshly uploaded photo."""

    row_id: str  # client-generated UUID4
    image_url: str
    keyword: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class UploadRecord:
    storage_path: str  # uploads/{unixMillis}-{token}.{ext}
    public_url: str
    row_id: str
