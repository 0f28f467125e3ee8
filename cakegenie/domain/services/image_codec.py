"""Decode uploaded photos into Pillow bitmaps, independent of source encoding."""
from __future__ import annotations

import base64
import logging
from io import BytesIO

from PIL import Image, ImageFile, ImageOps

from cakegenie.config import PREVIEW_MAX_EDGE
from cakegenie.domain.errors import DecodeError

logger = logging.getLogger("cakegenie.codec")


def read_dimensions(data: bytes) -> tuple[int, int]:
    """Return (width, height) from the image header without decoding pixels."""
    try:
        with Image.open(BytesIO(data)) as img:
            return img.size
    except Exception as exc:
        raise DecodeError(f"Could not read image dimensions: {exc}") from exc


def has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA"):
        return True
    return img.mode == "P" and "transparency" in img.info


class ImageCodecAdapter:
    """Bitmap decoder with an orientation-aware primary path and a plain fallback.

    The primary path opens the image with Pillow and applies the EXIF
    orientation tag, so rotated phone photos come out upright. The fallback
    feeds the bytes through ``ImageFile.Parser`` and keeps the stored
    orientation.
    """

    def __init__(self, native_enabled: bool = True) -> None:
        self.native_enabled = native_enabled

    def decode(self, data: bytes) -> Image.Image:
        if self.native_enabled:
            try:
                return self._decode_native(data)
            except Exception as exc:
                logger.debug("Native decode failed, using fallback decoder: %s", exc)
        try:
            return self._decode_fallback(data)
        except Exception as exc:
            raise DecodeError(f"Unable to decode image: {exc}") from exc

    @staticmethod
    def _decode_native(data: bytes) -> Image.Image:
        with Image.open(BytesIO(data)) as img:
            img.load()
            # exif_transpose always returns a new image, detached from the file
            return ImageOps.exif_transpose(img)

    @staticmethod
    def _decode_fallback(data: bytes) -> Image.Image:
        parser = ImageFile.Parser()
        parser.feed(data)
        return parser.close()

    def preview_data_url(self, data: bytes, max_edge: int = PREVIEW_MAX_EDGE) -> str:
        """Encode a small thumbnail of ``data`` as a ``data:`` URL for display."""
        img = self.decode(data)
        img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
        buf = BytesIO()
        if has_alpha(img):
            img.convert("RGBA").save(buf, format="PNG", optimize=True)
            mime = "image/png"
        else:
            img.convert("RGB").save(buf, format="JPEG", quality=80)
            mime = "image/jpeg"
        encoded = base64.b64encode(buf.getvalue()).decode("ascii")
        return f"data:{mime};base64,{encoded}"
