from __future__ import annotations

from dataclasses import dataclass, field

from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.entities.upload_record import UploadRecord


@dataclass(frozen=True)
class GalleryItem:
    """The single selected photo shown to the user."""

    id: str  # row id once registered, otherwise a local id
    preview_url: str = field(repr=False)  # data: URL thumbnail
    data: bytes = field(repr=False)  # bytes that were (or will be) uploaded
    media_type: str
    ext: str
    filename: str
    original: SourceFile | None = field(default=None, repr=False)
    record: UploadRecord | None = None
    compression: CompressionResult | None = None

    @property
    def is_uploaded(self) -> bool:
        return self.record is not None

    @property
    def public_url(self) -> str | None:
        return self.record.public_url if self.record else None
