from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from cakegenie.application.dtos.pricing_dto import PriceResult
from cakegenie.config import (
    POLL_INITIAL_DELAY_SECONDS,
    POLL_INTERVAL_SECONDS,
    POLL_MAX_ATTEMPTS,
    PRICE_CURRENCY_SYMBOL,
)
from cakegenie.domain.cancellation import CancellationToken
from cakegenie.domain.errors import CakeGenieError, PollingTimeout
from cakegenie.infrastructure.database.repositories.pricing_repository import PricingRepository

logger = logging.getLogger("cakegenie.polling")


class PollStatus(str, Enum):
    FOUND = "found"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass(frozen=True)
class PollOutcome:
    status: PollStatus
    result: PriceResult
    reads: int
    error: CakeGenieError | None = None


@dataclass
class PollPricingUseCase:
    """
    Wait for the AI to write a price onto a pricing row.

    Waits ``initial_delay`` before the first read, then does at most
    ``max_attempts`` reads, ``interval`` seconds apart. A read error is logged
    and retried. It only counts as a failure when the final read also failed.
    Nothing is raised to the caller: every way the loop can end maps to a
    ``PriceResult`` payload.
    """

    pricing_repo: PricingRepository
    initial_delay: float = POLL_INITIAL_DELAY_SECONDS
    interval: float = POLL_INTERVAL_SECONDS
    max_attempts: int = POLL_MAX_ATTEMPTS
    currency: str = PRICE_CURRENCY_SYMBOL
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def execute(
        self,
        row_id: str,
        public_url: str | None = None,
        token: CancellationToken | None = None,
        on_tick: Callable[[int, int], None] | None = None,
    ) -> PollOutcome | None:
        """Poll ``row_id`` until priced, exhausted or cancelled (returns None)."""
        token = token or CancellationToken()
        logger.info("Waiting %.0fs before checking pricing for %s", self.initial_delay, row_id)
        await self.sleep(self.initial_delay)

        last_error: CakeGenieError | None = None
        for attempt in range(1, self.max_attempts + 1):
            if token.cancelled:
                logger.info("Polling for %s stopped (%s)", row_id, token.reason)
                return None
            if on_tick is not None:
                on_tick(attempt, self.max_attempts)

            logger.info("Polling attempt %d/%d for %s", attempt, self.max_attempts, row_id)
            try:
                record = await self.pricing_repo.get(row_id)
            except CakeGenieError as exc:
                last_error = exc
                logger.error("Polling error on attempt %d: %s", attempt, exc)
            else:
                last_error = None
                if record is not None and record.has_pricing:
                    if token.cancelled:
                        return None
                    logger.info("Pricing data found for %s: %s", row_id, record.price_addon)
                    return PollOutcome(
                        status=PollStatus.FOUND,
                        result=PriceResult.from_record(record, public_url, self.currency),
                        reads=attempt,
                    )

            if attempt < self.max_attempts:
                await self.sleep(self.interval)

        if token.cancelled:
            return None
        if last_error is not None:
            return PollOutcome(
                status=PollStatus.ERROR,
                result=PriceResult.polling_error(row_id, public_url),
                reads=self.max_attempts,
                error=last_error,
            )
        timeout = PollingTimeout(row_id, self.max_attempts)
        logger.warning("%s", timeout)
        return PollOutcome(
            status=PollStatus.TIMEOUT,
            result=PriceResult.still_processing(row_id, public_url),
            reads=self.max_attempts,
            error=timeout,
        )

    async def refresh(self, row_id: str, public_url: str | None = None) -> PriceResult | None:
        """One immediate read. None means the AI has not written a price yet.

        Raises:
            CakeGenieError: when the read itself failed.
        """
        record = await self.pricing_repo.get(row_id)
        if record is None or not record.has_pricing:
            logger.info("Pricing for %s not ready on refresh", row_id)
            return None
        return PriceResult.from_record(record, public_url or record.image_url, self.currency)
