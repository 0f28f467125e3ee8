"""
Tests for the upload orchestrator.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from cakegenie.application.state import EstimateStateMachine, Failed, Idle, OperationState
from cakegenie.application.use_cases.upload_image import UploadImageUseCase
from cakegenie.domain.cancellation import CancellationToken
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.errors import (
    USER_MESSAGES,
    DatabaseError,
    DecodeError,
    ErrorCategory,
    NetworkError,
    StorageError,
)
from cakegenie.domain.services.compression_service import CompressionService
from cakegenie.infrastructure.database.repositories.pricing_repository import PricingRepository
from cakegenie.infrastructure.storage.supabase_storage import StoredObject, SupabaseStorage


def stored(path, data, content_type):
    return StoredObject(path=path, public_url=f"https://cdn.example/{path}", content_type=content_type, size=len(data))


class BlockingStorage:
    """Storage double whose put() waits until the test releases it."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.put = AsyncMock(side_effect=self._put)
        self.delete = AsyncMock()

    async def _put(self, path, data, content_type):
        self.started.set()
        await self.release.wait()
        return stored(path, data, content_type)


@pytest.fixture()
def machine():
    return EstimateStateMachine()


@pytest.fixture()
def gate():
    return asyncio.Event()


@pytest.fixture()
def gated_sleep(gate, sleeps):
    async def sleep(delay):
        sleeps.append(delay)
        await gate.wait()

    return sleep


@pytest.fixture()
def make_uploader(machine, gated_sleep):
    def factory(storage=None, repo=None, **kwargs):
        return UploadImageUseCase(
            storage=storage or SupabaseStorage(None),
            pricing_repo=repo or PricingRepository(None),
            compressor=CompressionService(),
            machine=machine,
            sleep=gated_sleep,
            **kwargs,
        )

    return factory


@pytest.fixture()
def photo(make_image):
    return SourceFile(make_image(600, 400), "image/jpeg", "birthday.jpg")


class TestUploadImageUseCase:
    @pytest.mark.asyncio
    async def test_successful_upload(self, make_uploader, machine, photo, isolated_backends):
        repo = PricingRepository(None)
        uploader = make_uploader(repo=repo)

        item = await uploader.execute(photo)

        assert item is not None
        assert item.is_uploaded
        assert item.preview_url.startswith("data:image/jpeg;base64,")
        assert item.record.public_url == f"/local-storage/{item.record.storage_path}"
        assert (isolated_backends / item.record.storage_path).read_bytes() == item.data

        row = await repo.get(item.record.row_id)
        assert row.image_url == item.record.public_url
        assert row.keyword == "birthday.jpg"
        assert not row.has_pricing

        state = machine.state
        assert isinstance(state.phase, Idle)
        assert state.gallery == item
        assert state.error is None
        assert state.compression.original_size == photo.size
        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_none_file_is_ignored(self, make_uploader, machine):
        assert await make_uploader().execute(None) is None
        assert machine.generation == 0

    @pytest.mark.asyncio
    async def test_validation_failure_stops_before_upload(self, make_uploader, machine, make_image):
        storage = Mock(put=AsyncMock())
        uploader = make_uploader(storage=storage)
        tiny = SourceFile(make_image(150, 150), "image/jpeg", "tiny.jpg")

        assert await uploader.execute(tiny) is None
        storage.put.assert_not_awaited()
        assert machine.state.error == "Image is too small. Minimum dimensions are 200x200px."
        assert machine.state.gallery is None

    @pytest.mark.asyncio
    async def test_second_submit_is_dropped_while_in_flight(self, make_uploader, photo, make_image):
        storage = BlockingStorage()
        uploader = make_uploader(storage=storage)

        first = asyncio.create_task(uploader.execute(photo))
        await asyncio.wait_for(storage.started.wait(), timeout=10)
        assert uploader.in_flight

        other = SourceFile(make_image(500, 500), "image/jpeg", "other.jpg")
        assert await uploader.execute(other) is None

        storage.release.set()
        item = await first
        assert item is not None
        assert item.filename == "birthday.jpg"
        assert storage.put.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_during_upload_has_no_side_effects(self, make_uploader, machine, photo):
        storage = BlockingStorage()
        repo = Mock(insert=AsyncMock())
        uploader = make_uploader(storage=storage, repo=repo)

        first = asyncio.create_task(uploader.execute(photo))
        await asyncio.wait_for(storage.started.wait(), timeout=10)
        await uploader.close()

        assert await first is None
        repo.insert.assert_not_awaited()
        assert machine.state.error is None
        assert machine.state.gallery is None
        assert not uploader.in_flight

    @pytest.mark.asyncio
    async def test_storage_failure_shows_category_and_preview(self, make_uploader, machine, photo, gate, sleeps):
        storage = Mock(put=AsyncMock(side_effect=StorageError("bucket missing")))
        uploader = make_uploader(storage=storage)

        assert await uploader.execute(photo) is None

        state = machine.state
        assert isinstance(state.phase, Failed)
        assert state.phase.category is ErrorCategory.STORAGE
        assert state.error == USER_MESSAGES[ErrorCategory.STORAGE]
        assert state.gallery is not None
        assert not state.gallery.is_uploaded
        assert state.gallery.preview_url.startswith("data:image/jpeg;base64,")

        # error clears after the display period
        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert sleeps == [5.0]
        assert isinstance(machine.state.phase, Idle)
        await uploader.close()

    @pytest.mark.asyncio
    async def test_network_failure_is_classified(self, make_uploader, machine, photo):
        storage = Mock(put=AsyncMock(side_effect=NetworkError("connection reset")))
        uploader = make_uploader(storage=storage)

        await uploader.execute(photo)
        assert machine.state.phase.category is ErrorCategory.NETWORK
        assert "internet connection" in machine.state.error
        await uploader.close()

    @pytest.mark.asyncio
    async def test_missing_configuration_is_classified(self, supabase_enabled, make_uploader, machine, photo):
        uploader = make_uploader(storage=SupabaseStorage(None), repo=PricingRepository(None))

        assert await uploader.execute(photo) is None
        assert machine.state.phase.category is ErrorCategory.CONFIGURATION
        assert machine.state.error == USER_MESSAGES[ErrorCategory.CONFIGURATION]
        await uploader.close()

    @pytest.mark.asyncio
    async def test_database_failure_removes_uploaded_object(self, make_uploader, machine, photo, isolated_backends):
        repo = Mock(insert=AsyncMock(side_effect=DatabaseError("insert failed")))
        uploader = make_uploader(repo=repo)

        assert await uploader.execute(photo) is None
        assert machine.state.phase.category is ErrorCategory.DATABASE
        assert [p for p in isolated_backends.rglob("*") if p.is_file()] == []
        await uploader.close()

    @pytest.mark.asyncio
    async def test_preview_failure_falls_back_to_generic_message(self, make_uploader, machine, photo):
        storage = Mock(put=AsyncMock(side_effect=StorageError("bucket missing")))
        codec = Mock(preview_data_url=Mock(side_effect=DecodeError("unreadable")))
        uploader = make_uploader(storage=storage, codec=codec)

        await uploader.execute(photo)
        assert machine.state.phase.category is ErrorCategory.GENERIC
        assert machine.state.error == "Failed to process image. Please try again."
        assert machine.state.gallery is None
        await uploader.close()

    @pytest.mark.asyncio
    async def test_upload_existing_registers_local_item(self, make_uploader, machine, photo):
        storage = Mock(put=AsyncMock(side_effect=StorageError("offline")))
        uploader = make_uploader(storage=storage)
        await uploader.execute(photo)
        local_item = machine.state.gallery

        storage.put = AsyncMock(side_effect=stored)
        item = await uploader.upload_existing(local_item, CancellationToken())

        assert item.is_uploaded
        assert item.id == item.record.row_id
        assert item.record.public_url.startswith("https://cdn.example/uploads/")
        assert item.record.public_url.endswith(".jpg")
        await uploader.close()

    @pytest.mark.asyncio
    async def test_upload_existing_stops_when_cancelled(self, make_uploader, machine, photo):
        storage = Mock(put=AsyncMock(side_effect=stored))
        uploader = make_uploader(storage=storage)
        item = await uploader.execute(photo)
        repo = uploader.pricing_repo = Mock(insert=AsyncMock())

        token = CancellationToken()
        token.cancel("superseded")
        assert await uploader.upload_existing(item, token) is None
        repo.insert.assert_not_awaited()
        assert machine.state.operation is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_success_passes_through_complete(self, make_uploader, machine, photo):
        seen = []
        machine.subscribe(lambda event, state: seen.append((state.operation, state.message)))

        await make_uploader().execute(photo)

        assert (OperationState.COMPLETE, "Upload complete!") in seen
        assert seen[-1][0] is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_submit_is_dropped_while_local_item_uploads(self, make_uploader, machine, photo, make_image):
        failing = Mock(put=AsyncMock(side_effect=StorageError("offline")))
        uploader = make_uploader(storage=failing)
        await uploader.execute(photo)
        local_item = machine.state.gallery

        storage = BlockingStorage()
        uploader.storage = storage
        pending = asyncio.create_task(uploader.upload_existing(local_item, CancellationToken()))
        await asyncio.wait_for(storage.started.wait(), timeout=10)
        assert uploader.in_flight

        other = SourceFile(make_image(500, 500), "image/jpeg", "other.jpg")
        assert await uploader.execute(other) is None
        assert storage.put.await_count == 1

        storage.release.set()
        item = await pending
        assert item.is_uploaded
        assert item.filename == "birthday.jpg"
        assert not uploader.in_flight
        await uploader.close()

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_database_category(self, make_uploader, machine, photo):
        storage = Mock(
            put=AsyncMock(side_effect=stored),
            delete=AsyncMock(side_effect=RuntimeError("socket closed")),
        )
        repo = Mock(insert=AsyncMock(side_effect=DatabaseError("insert failed")))
        uploader = make_uploader(storage=storage, repo=repo)

        assert await uploader.execute(photo) is None
        storage.delete.assert_awaited_once()
        assert machine.state.phase.category is ErrorCategory.DATABASE
        assert machine.state.error == USER_MESSAGES[ErrorCategory.DATABASE]
        await uploader.close()
