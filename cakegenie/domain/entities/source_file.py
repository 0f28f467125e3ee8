from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path


@dataclass(frozen=True)
class SourceFile:
    """A photo selected by the user, exactly as selected."""

    data: bytes = field(repr=False)
    media_type: str
    filename: str = "image"

    @classmethod
    def from_path(cls, path: str | Path) -> SourceFile:
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(
            data=path.read_bytes(),
            media_type=media_type or "application/octet-stream",
            filename=path.name,
        )

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    def extension(self, default: str = "jpg") -> str:
        name = self.filename or ""
        ext = name.rsplit(".", 1)[-1] if "." in name else ""
        return (ext or default).lower()

    # Read from the header on first access; raises DecodeError for unreadable data
    @cached_property
    def dimensions(self) -> tuple[int, int]:
        from cakegenie.domain.services.image_codec import read_dimensions

        return read_dimensions(self.data)
