"""Resize and re-encode uploaded photos until they fit the upload byte budget."""
from __future__ import annotations

import asyncio
import logging
import math
from io import BytesIO

from PIL import Image, features

from cakegenie.config import (
    MAX_ENCODE_ATTEMPTS,
    MAX_LONG_EDGE,
    QUALITY_MIN,
    QUALITY_START,
    QUALITY_STEP,
    TARGET_MAX_BYTES,
)
from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.services.image_codec import ImageCodecAdapter, has_alpha

logger = logging.getLogger("cakegenie.compression")

# Single-frame re-encoding would drop animation frames
ANIMATED_MEDIA_TYPES = {"image/gif"}


def format_file_size(num_bytes: int) -> str:
    """Human-readable size, e.g. ``1.5 KB`` or ``2.34 MB``."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(num_bytes) / math.log(1024))), len(units) - 1)
    value = round(num_bytes / (1024**i), 2)
    return f"{value:g} {units[i]}"


def flatten_onto_white(img: Image.Image) -> Image.Image:
    """Composite ``img`` over an opaque white background (JPEG has no alpha)."""
    if not has_alpha(img):
        return img.convert("RGB")
    rgba = img.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


class CompressionService:
    """Best-effort photo compression.

    Fits a photo inside ``max_long_edge`` pixels and ``target_max_bytes``
    bytes. WebP is preferred, with JPEG as the fallback. Quality steps down
    from ``quality_start`` to ``quality_min``, for at most ``max_attempts``
    encodes. Any failure returns the original bytes with ``error`` set, so a
    compression problem never blocks an upload.
    """

    def __init__(
        self,
        codec: ImageCodecAdapter | None = None,
        *,
        max_long_edge: int = MAX_LONG_EDGE,
        target_max_bytes: int = TARGET_MAX_BYTES,
        quality_start: float = QUALITY_START,
        quality_min: float = QUALITY_MIN,
        quality_step: float = QUALITY_STEP,
        max_attempts: int = MAX_ENCODE_ATTEMPTS,
        webp_enabled: bool | None = None,
    ) -> None:
        self.codec = codec or ImageCodecAdapter()
        self.max_long_edge = max_long_edge
        self.target_max_bytes = target_max_bytes
        self.quality_start = quality_start
        self.quality_min = quality_min
        self.quality_step = quality_step
        self.max_attempts = max(1, max_attempts)
        self.webp_enabled = features.check("webp") if webp_enabled is None else webp_enabled

    async def compress(self, file: SourceFile) -> CompressionResult:
        return await asyncio.to_thread(self.compress_sync, file)

    def compress_sync(self, file: SourceFile) -> CompressionResult:
        if not file.is_image:
            return self._passthrough(file, file.extension("bin"))
        if file.media_type in ANIMATED_MEDIA_TYPES:
            return self._passthrough(file, "gif")

        try:
            src_w, src_h = file.dimensions
            if max(src_w, src_h) <= self.max_long_edge and file.size <= self.target_max_bytes:
                return self._passthrough(file, file.extension())

            bitmap = self.codec.decode(file.data)
            src_w, src_h = bitmap.size
            surface = self._draw(bitmap)
            data, ext, media_type, attempts, quality = self._encode_to_budget(surface)
        except Exception as exc:
            logger.warning("Image compression failed, using original: %s", exc)
            return self._passthrough(file, file.extension(), error=str(exc))

        compressed_size = len(data)
        ratio = file.size / compressed_size if compressed_size else 0.0
        logger.info(
            "Compressed %s: %s -> %s (%.1fx) %dx%d -> %dx%d in %d attempt(s)",
            file.filename,
            format_file_size(file.size),
            format_file_size(compressed_size),
            ratio,
            src_w,
            src_h,
            surface.width,
            surface.height,
            attempts,
        )
        return CompressionResult(
            data=data,
            ext=ext,
            media_type=media_type,
            original_size=file.size,
            compressed_size=compressed_size,
            compression_ratio=ratio,
            width=surface.width,
            height=surface.height,
            original_width=src_w,
            original_height=src_h,
            attempts=attempts,
            quality=quality,
        )

    @staticmethod
    def _passthrough(file: SourceFile, ext: str, error: str | None = None) -> CompressionResult:
        return CompressionResult(
            data=file.data,
            ext=ext,
            media_type=file.media_type,
            original_size=file.size,
            compressed_size=file.size,
            compression_ratio=1.0,
            error=error,
        )

    def target_dimensions(self, width: int, height: int) -> tuple[int, int]:
        scale = min(1.0, self.max_long_edge / max(width, height))
        # round half up
        return max(1, int(width * scale + 0.5)), max(1, int(height * scale + 0.5))

    def _draw(self, bitmap: Image.Image) -> Image.Image:
        dst_w, dst_h = self.target_dimensions(*bitmap.size)
        surface = bitmap.convert("RGBA" if has_alpha(bitmap) else "RGB")
        if surface.size != (dst_w, dst_h):
            surface = surface.resize((dst_w, dst_h), Image.Resampling.LANCZOS)
        return surface

    def _encode_to_budget(self, surface: Image.Image) -> tuple[bytes, str, str, int, float]:
        quality = self.quality_start
        attempts = 0
        while True:
            data, ext, media_type = self._encode(surface, quality)
            attempts += 1
            logger.debug("Encode attempt %d: %s q=%.2f -> %d bytes", attempts, ext, quality, len(data))
            if (
                len(data) <= self.target_max_bytes
                or quality <= self.quality_min
                or attempts >= self.max_attempts
            ):
                return data, ext, media_type, attempts, quality
            quality = max(self.quality_min, round(quality - self.quality_step, 2))

    def _encode(self, surface: Image.Image, quality: float) -> tuple[bytes, str, str]:
        q = int(round(quality * 100))
        if self.webp_enabled:
            try:
                data = self._save(surface, "WEBP", quality=q, method=4)
            except (KeyError, OSError, ValueError) as exc:
                logger.debug("WebP encode unavailable, falling back to JPEG: %s", exc)
                data = b""
            if data:
                return data, "webp", "image/webp"
        flat = flatten_onto_white(surface)
        return self._save(flat, "JPEG", quality=q, optimize=True), "jpg", "image/jpeg"

    @staticmethod
    def _save(img: Image.Image, fmt: str, **save_kw) -> bytes:
        buf = BytesIO()
        img.save(buf, format=fmt, **save_kw)
        return buf.getvalue()
