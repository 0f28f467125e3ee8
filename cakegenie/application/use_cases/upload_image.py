from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

from cakegenie.application.state import (
    CompressDone,
    ErrorExpired,
    EstimateStateMachine,
    Finalize,
    RegisterDone,
    Submit,
    UploadDone,
    UploadFail,
    UploadSettled,
    ValidateFail,
    ValidatePass,
)
from cakegenie.config import ERROR_DISPLAY_SECONDS
from cakegenie.domain.cancellation import CancellationToken
from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.gallery_item import GalleryItem
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.entities.upload_record import UploadRecord
from cakegenie.domain.errors import CakeGenieError, DecodeError, ErrorCategory, ValidationError, classify_error
from cakegenie.domain.services.compression_service import CompressionService, format_file_size
from cakegenie.domain.services.image_codec import ImageCodecAdapter
from cakegenie.domain.services.validation import validate_source_file
from cakegenie.infrastructure.database.repositories.pricing_repository import PricingRepository
from cakegenie.infrastructure.storage.supabase_storage import SupabaseStorage, build_upload_path

logger = logging.getLogger("cakegenie.upload")


@dataclass
class UploadImageUseCase:
    """
    Validate, compress, upload and register one cake photo.

    Only one upload runs at a time: a submission that arrives while another is
    in flight is dropped, not queued. Each attempt owns a cancellation token,
    which is checked after compression, after the storage write and after
    registration. Once it is cancelled, no further side effects happen and no
    error is shown.
    """

    storage: SupabaseStorage
    pricing_repo: PricingRepository
    compressor: CompressionService
    machine: EstimateStateMachine
    codec: ImageCodecAdapter = field(default_factory=ImageCodecAdapter)
    error_display_seconds: float = ERROR_DISPLAY_SECONDS
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    _in_flight: bool = field(default=False, init=False, repr=False)
    _token: CancellationToken | None = field(default=None, init=False, repr=False)
    _task: asyncio.Future | None = field(default=None, init=False, repr=False)
    _reset_task: asyncio.Future | None = field(default=None, init=False, repr=False)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def execute(self, file: SourceFile | None) -> GalleryItem | None:
        """
        Run one upload attempt for ``file``.

        Returns:
            The new gallery item, or None when the attempt was rejected,
            failed, or was cancelled. Failures are reported through the
            state machine, not raised.
        """
        if self._in_flight:
            logger.info("Upload already in progress, ignoring %s", file.filename if file else None)
            return None
        if file is None:
            return None
        self._in_flight = True

        if self._token is not None:
            self._token.cancel("superseded")
        token = self._token = CancellationToken()
        generation = self.machine.begin_attempt()
        self.machine.dispatch(Submit(), generation)

        try:
            self._task = asyncio.ensure_future(self._run(file, token, generation))
            return await self._task
        except asyncio.CancelledError:
            if token.cancelled:
                logger.info("Upload of %s cancelled (%s)", file.filename, token.reason)
                return None
            raise
        finally:
            self._in_flight = False
            self._task = None

    async def upload_existing(self, item: GalleryItem, token: CancellationToken) -> GalleryItem | None:
        """Upload and register a gallery item that only exists locally.

        Raises:
            CakeGenieError: storage, database or configuration failure.
        """
        if self._in_flight:
            logger.info("Upload already in progress, ignoring %s", item.filename)
            return None
        self._in_flight = True
        try:
            record = await self._upload_and_register(item.data, item.ext, item.media_type, item.filename, token)
        finally:
            self._in_flight = False
        if record is None:
            return None
        return replace(item, id=record.row_id, record=record)

    async def close(self) -> None:
        """Cancel the running attempt and any pending error reset."""
        if self._token is not None:
            self._token.cancel("closed")
        pending = [t for t in (self._task, self._reset_task) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, file: SourceFile, token: CancellationToken, generation: int) -> GalleryItem | None:
        try:
            await validate_source_file(file)
        except ValidationError as exc:
            logger.info("Rejected %s: %s", file.filename, exc)
            self.machine.dispatch(ValidateFail(str(exc)), generation)
            return None
        if token.cancelled:
            return None

        self.machine.dispatch(ValidatePass(), generation)
        try:
            compression = await self.compressor.compress(file)
            if token.cancelled:
                return None
            self.machine.dispatch(CompressDone(compression), generation)
            logger.info(
                "Image compression complete: %s -> %s (%.1fx)",
                format_file_size(compression.original_size),
                format_file_size(compression.compressed_size),
                compression.compression_ratio,
            )

            record = await self._upload_and_register(
                compression.data,
                compression.ext,
                compression.media_type,
                file.filename,
                token,
                generation,
            )
            if record is None:
                return None

            item = await self._build_item(compression.data, compression.media_type, compression.ext, file, record, compression)
            if token.cancelled:
                return None
            self.machine.dispatch(Finalize(item), generation)
            self.machine.dispatch(UploadSettled(), generation)
            logger.info("Image processed successfully: row %s", record.row_id)
            return item
        except Exception as exc:
            if token.cancelled:
                return None
            await self._fail(file, exc, token, generation)
            return None

    async def _upload_and_register(
        self,
        data: bytes,
        ext: str,
        media_type: str,
        filename: str,
        token: CancellationToken,
        generation: int | None = None,
    ) -> UploadRecord | None:
        stored = await self.storage.put(build_upload_path(ext), data, media_type)
        if token.cancelled:
            return None
        logger.info("Image uploaded successfully: %s", stored.public_url)
        if generation is not None:
            self.machine.dispatch(UploadDone(stored.public_url), generation)

        try:
            row = await self.pricing_repo.insert(stored.public_url, filename)
        except CakeGenieError:
            await self._discard_object(stored.path)
            raise
        if token.cancelled:
            return None
        record = UploadRecord(storage_path=stored.path, public_url=stored.public_url, row_id=row.row_id)
        logger.info("Image data saved to database: row %s", record.row_id)
        if generation is not None:
            self.machine.dispatch(RegisterDone(record), generation)
        return record

    async def _discard_object(self, path: str) -> None:
        try:
            await self.storage.delete(path)
            logger.debug("Cleaned up orphaned upload %s", path)
        except Exception as exc:
            logger.warning("Failed to clean up orphaned upload %s: %s", path, exc)

    async def _build_item(
        self,
        data: bytes,
        media_type: str,
        ext: str,
        original: SourceFile,
        record: UploadRecord | None,
        compression: CompressionResult | None,
    ) -> GalleryItem:
        preview = await asyncio.to_thread(self.codec.preview_data_url, data)
        return GalleryItem(
            id=record.row_id if record else f"local-{uuid.uuid4().hex[:12]}",
            preview_url=preview,
            data=data,
            media_type=media_type,
            ext=ext,
            filename=original.filename,
            original=original,
            record=record,
            compression=compression,
        )

    async def _fail(self, file: SourceFile, exc: Exception, token: CancellationToken, generation: int) -> None:
        category, message = classify_error(exc)
        logger.error("Upload process failed (%s): %s", category.value, exc)

        # Still show the original photo so the user has visual feedback
        preview: GalleryItem | None = None
        try:
            preview = await self._build_item(file.data, file.media_type, file.extension(), file, None, None)
        except (DecodeError, OSError, ValueError) as preview_exc:
            logger.error("Failed to create preview: %s", preview_exc)
            category, message = ErrorCategory.GENERIC, "Failed to process image. Please try again."
        if token.cancelled:
            return

        self.machine.dispatch(UploadFail(category, message, preview), generation)
        self._reset_task = asyncio.ensure_future(self._clear_error_later(token, generation))

    async def _clear_error_later(self, token: CancellationToken, generation: int) -> None:
        await self.sleep(self.error_display_seconds)
        if not token.cancelled:
            self.machine.dispatch(ErrorExpired(), generation)
