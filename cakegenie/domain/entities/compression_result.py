from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CompressionResult:
    data: bytes = field(repr=False)
    ext: str
    media_type: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    # None when compression was skipped
    width: int | None = None
    height: int | None = None
    original_width: int | None = None
    original_height: int | None = None
    error: str | None = None
    attempts: int = 0
    quality: float | None = None

    @property
    def skipped(self) -> bool:
        return self.attempts == 0

    @property
    def dimensions(self) -> tuple[int, int] | None:
        if self.width is None or self.height is None:
            return None
        return self.width, self.height
