from __future__ import annotations

import asyncio

from cakegenie.config import MAX_UPLOAD_SIZE_BYTES, MIN_IMAGE_DIMENSION
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.errors import DecodeError, ValidationError
from cakegenie.domain.services.image_codec import read_dimensions


async def validate_source_file(
    file: SourceFile,
    *,
    max_size_bytes: int = MAX_UPLOAD_SIZE_BYTES,
    min_dimension: int = MIN_IMAGE_DIMENSION,
) -> tuple[int, int]:
    """Check type, size and pixel dimensions of a selected photo.

    Returns the (width, height) read from the header.

    Raises:
        ValidationError: with the message to show next to the upload area.
    """
    if not file.is_image:
        raise ValidationError("Invalid file type. Please upload an image.")
    if file.size > max_size_bytes:
        max_mb = max_size_bytes // (1024 * 1024)
        raise ValidationError(f"File is too large. Maximum size is {max_mb}MB.")
    try:
        width, height = await asyncio.to_thread(read_dimensions, file.data)
    except DecodeError as exc:
        raise ValidationError("Could not read image dimensions.") from exc
    if width < min_dimension or height < min_dimension:
        raise ValidationError(
            f"Image is too small. Minimum dimensions are {min_dimension}x{min_dimension}px."
        )
    return width, height
