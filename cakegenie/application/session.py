"""One user's estimate flow: a single gallery slot, one upload and one poll at a time."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from cakegenie.application.dtos.pricing_dto import PriceResult
from cakegenie.application.state import (
    Dismiss,
    EstimateState,
    EstimateStateMachine,
    GalleryUpdated,
    Listener,
    PollFailed,
    PollFound,
    PollStarted,
    PollTick,
    PollTimeout,
    PricingFailed,
    PricingRequested,
    RefreshNotReady,
    RefreshStarted,
)
from cakegenie.application.use_cases.poll_pricing import PollPricingUseCase, PollStatus
from cakegenie.application.use_cases.upload_image import UploadImageUseCase
from cakegenie.domain.cancellation import CancellationToken
from cakegenie.domain.entities.gallery_item import GalleryItem
from cakegenie.domain.entities.source_file import SourceFile
from cakegenie.domain.entities.upload_record import UploadRecord
from cakegenie.domain.errors import CakeGenieError, classify_error

logger = logging.getLogger("cakegenie.session")

_OUTCOME_EVENTS = {
    PollStatus.FOUND: PollFound,
    PollStatus.TIMEOUT: PollTimeout,
    PollStatus.ERROR: PollFailed,
}


class EstimateSession:
    def __init__(
        self,
        uploader: UploadImageUseCase,
        poller: PollPricingUseCase,
        machine: EstimateStateMachine,
    ) -> None:
        self.uploader = uploader
        self.poller = poller
        self.machine = machine
        self._poll_token: CancellationToken | None = None
        self._poll_task: asyncio.Future | None = None
        self._background: set[asyncio.Future] = set()

    @property
    def state(self) -> EstimateState:
        return self.machine.state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.machine.subscribe(listener)

    async def submit(self, file: SourceFile | None) -> GalleryItem | None:
        """Replace the gallery photo with ``file``.

        Dropped while an upload is running, including the one started by
        ``calculate_price`` for a photo that only exists locally.
        """
        if file is not None and not self.uploader.in_flight:
            self._stop_polling("new photo selected")
        return await self.uploader.execute(file)

    async def calculate_price(self, wait: bool = True) -> PriceResult | None:
        """
        Start pricing the gallery photo.

        A photo that only exists locally (its upload failed) is uploaded
        first. With ``wait`` the call returns the final ``PriceResult``;
        otherwise polling keeps running in the background and the outcome
        only reaches the state machine.
        """
        item = self.state.gallery
        if item is None:
            logger.info("No photo selected, nothing to price")
            return None
        if self.uploader.in_flight:
            logger.info("Upload in progress, price calculation ignored")
            return None

        self._stop_polling("price calculation restarted")
        generation = self.machine.begin_attempt()
        token = self._poll_token = CancellationToken()
        self.machine.dispatch(PricingRequested(), generation)

        try:
            if not item.is_uploaded:
                uploaded = await self.uploader.upload_existing(item, token)
                if uploaded is None:
                    return None
                item = uploaded
                self.machine.dispatch(GalleryUpdated(item), generation)
        except CakeGenieError as exc:
            _, message = classify_error(exc)
            logger.error("Price calculation failed: %s", exc)
            if not token.cancelled:
                self.machine.dispatch(PricingFailed(message), generation)
            return None

        record = item.record
        self.machine.dispatch(PollStarted(PriceResult.placeholder(record.row_id, record.public_url)), generation)
        task = asyncio.ensure_future(self._poll(record, token, generation))
        self._poll_task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        if not wait:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if token.cancelled:
                return None
            raise

    async def refresh_price(self) -> PriceResult | None:
        """Manual one-shot read of the current pricing row."""
        current = self.state.price_result
        if current is None or not current.row_id:
            logger.info("No pricing row to refresh")
            return None
        if self.uploader.in_flight:
            logger.info("Upload in progress, refresh ignored")
            return None

        self._stop_polling("manual refresh")
        generation = self.machine.begin_attempt()
        self.machine.dispatch(RefreshStarted(), generation)
        try:
            result = await self.poller.refresh(current.row_id, current.public_url)
        except CakeGenieError as exc:
            logger.error("Error refreshing pricing: %s", exc)
            self.machine.dispatch(RefreshNotReady("Failed to refresh pricing. Please try again."), generation)
            return None
        if result is None:
            self.machine.dispatch(
                RefreshNotReady("Pricing data not ready yet. Please try again in a few seconds."),
                generation,
            )
            return None
        self.machine.dispatch(PollFound(result, "Pricing data refreshed!"), generation)
        return result

    def dismiss(self) -> None:
        self.machine.dispatch(Dismiss())

    async def close(self) -> None:
        self._stop_polling("session closed")
        await self.uploader.close()
        pending = list(self._background)
        await asyncio.gather(*pending, return_exceptions=True)

    async def _poll(self, record: UploadRecord, token: CancellationToken, generation: int) -> PriceResult | None:
        def on_tick(attempt: int, max_attempts: int) -> None:
            self.machine.dispatch(PollTick(attempt, max_attempts), generation)

        outcome = await self.poller.execute(record.row_id, record.public_url, token=token, on_tick=on_tick)
        if outcome is None:
            return None
        self.machine.dispatch(_OUTCOME_EVENTS[outcome.status](outcome.result), generation)
        return outcome.result

    def _stop_polling(self, reason: str) -> None:
        if self._poll_token is not None:
            self._poll_token.cancel(reason)
            self._poll_token = None
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
