"""Explicit state machine for one client's upload and pricing flow.

The session state is a tagged union of five phases (``Idle``, ``Uploading``,
``Processing``, ``Complete``, ``Failed``) plus the gallery slot, the price
result and the inline error. It only changes through events passed to
``EstimateStateMachine.dispatch``. Every event carries the generation of the
attempt that produced it. Events from an older generation are dropped, so a
slow, superseded attempt can never overwrite the state of a newer one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, ClassVar, Union

from cakegenie.application.dtos.pricing_dto import CompressionInfo, PriceResult
from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.gallery_item import GalleryItem
from cakegenie.domain.entities.upload_record import UploadRecord
from cakegenie.domain.errors import ErrorCategory

logger = logging.getLogger("cakegenie.state")


class OperationState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


# ---- phases -------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    kind: ClassVar[OperationState] = OperationState.IDLE
    message: str = ""


@dataclass(frozen=True)
class Uploading:
    kind: ClassVar[OperationState] = OperationState.UPLOADING
    message: str


@dataclass(frozen=True)
class Processing:
    kind: ClassVar[OperationState] = OperationState.PROCESSING
    message: str


@dataclass(frozen=True)
class Complete:
    kind: ClassVar[OperationState] = OperationState.COMPLETE
    message: str


@dataclass(frozen=True)
class Failed:
    kind: ClassVar[OperationState] = OperationState.ERROR
    message: str
    category: ErrorCategory | None = None


Phase = Union[Idle, Uploading, Processing, Complete, Failed]


@dataclass(frozen=True)
class EstimateState:
    phase: Phase = field(default_factory=Idle)
    gallery: GalleryItem | None = None
    price_result: PriceResult | None = None
    compression: CompressionInfo | None = None
    error: str | None = None
    generation: int = 0

    @property
    def operation(self) -> OperationState:
        return self.phase.kind

    @property
    def message(self) -> str:
        return self.phase.message


# ---- events -------------------------------------------------------------


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class ValidateFail:
    message: str


@dataclass(frozen=True)
class ValidatePass:
    pass


@dataclass(frozen=True)
class CompressDone:
    result: CompressionResult


@dataclass(frozen=True)
class UploadDone:
    public_url: str


@dataclass(frozen=True)
class RegisterDone:
    record: UploadRecord


@dataclass(frozen=True)
class Finalize:
    item: GalleryItem


@dataclass(frozen=True)
class UploadSettled:
    pass


@dataclass(frozen=True)
class UploadFail:
    category: ErrorCategory
    message: str
    preview: GalleryItem | None = None


@dataclass(frozen=True)
class ErrorExpired:
    pass


@dataclass(frozen=True)
class PricingRequested:
    pass


@dataclass(frozen=True)
class GalleryUpdated:
    item: GalleryItem


@dataclass(frozen=True)
class PricingFailed:
    message: str


@dataclass(frozen=True)
class PollStarted:
    placeholder: PriceResult


@dataclass(frozen=True)
class PollTick:
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class PollFound:
    result: PriceResult
    message: str = "Analysis complete!"


@dataclass(frozen=True)
class PollTimeout:
    result: PriceResult


@dataclass(frozen=True)
class PollFailed:
    result: PriceResult


@dataclass(frozen=True)
class RefreshStarted:
    pass


@dataclass(frozen=True)
class RefreshNotReady:
    message: str


@dataclass(frozen=True)
class Dismiss:
    pass


Event = Union[
    Submit,
    ValidateFail,
    ValidatePass,
    CompressDone,
    UploadDone,
    RegisterDone,
    Finalize,
    UploadSettled,
    UploadFail,
    ErrorExpired,
    PricingRequested,
    GalleryUpdated,
    PricingFailed,
    PollStarted,
    PollTick,
    PollFound,
    PollTimeout,
    PollFailed,
    RefreshStarted,
    RefreshNotReady,
    Dismiss,
]

Listener = Callable[[Event, EstimateState], None]


class EstimateStateMachine:
    """Single writer of the session state."""

    def __init__(self) -> None:
        self._state = EstimateState()
        self._listeners: list[Listener] = []
        self._handlers: dict[type, Callable[[EstimateState, Event], EstimateState | None]] = {
            Submit: self._on_submit,
            ValidateFail: self._on_validate_fail,
            ValidatePass: self._on_validate_pass,
            CompressDone: self._on_compress_done,
            UploadDone: self._on_upload_done,
            RegisterDone: self._on_register_done,
            Finalize: self._on_finalize,
            UploadSettled: self._on_upload_settled,
            UploadFail: self._on_upload_fail,
            ErrorExpired: self._on_error_expired,
            PricingRequested: self._on_pricing_requested,
            GalleryUpdated: self._on_gallery_updated,
            PricingFailed: self._on_pricing_failed,
            PollStarted: self._on_poll_started,
            PollTick: self._on_poll_tick,
            PollFound: self._on_poll_found,
            PollTimeout: self._on_poll_timeout,
            PollFailed: self._on_poll_failed,
            RefreshStarted: self._on_refresh_started,
            RefreshNotReady: self._on_refresh_not_ready,
            Dismiss: self._on_dismiss,
        }

    @property
    def state(self) -> EstimateState:
        return self._state

    @property
    def generation(self) -> int:
        return self._state.generation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin_attempt(self) -> int:
        """Open a new generation; writes from older generations are rejected from now on."""
        self._state = replace(self._state, generation=self._state.generation + 1)
        return self._state.generation

    def is_current(self, generation: int) -> bool:
        return generation == self._state.generation

    def dispatch(self, event: Event, generation: int | None = None) -> bool:
        """Apply ``event``. Returns False when it was dropped (stale or not allowed)."""
        if generation is not None and not isinstance(event, Dismiss) and not self.is_current(generation):
            logger.debug(
                "Dropping %s from stale generation %s (current %s)",
                type(event).__name__,
                generation,
                self._state.generation,
            )
            return False
        handler = self._handlers[type(event)]
        new_state = handler(self._state, event)
        if new_state is None:
            logger.debug("Ignoring %s in phase %s", type(event).__name__, self._state.operation.value)
            return False
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(event, new_state)
            except Exception:
                logger.exception("State listener failed on %s", type(event).__name__)
        return True

    # ---- transitions ----------------------------------------------------

    @staticmethod
    def _busy(state: EstimateState) -> bool:
        return isinstance(state.phase, Uploading)

    def _on_submit(self, state, event):
        return replace(state, error=None, compression=None, price_result=None)

    def _on_validate_fail(self, state, event):
        return replace(state, error=event.message)

    def _on_validate_pass(self, state, event):
        return replace(state, phase=Uploading("Optimizing image..."))

    def _on_compress_done(self, state, event):
        if not self._busy(state):
            return None
        return replace(
            state,
            phase=Uploading("Uploading to cloud storage..."),
            compression=CompressionInfo.from_result(event.result),
        )

    def _on_upload_done(self, state, event):
        if not self._busy(state):
            return None
        return replace(state, phase=Uploading("Saving upload record..."))

    def _on_register_done(self, state, event):
        if not self._busy(state):
            return None
        return replace(state, phase=Uploading("Finalizing..."))

    def _on_finalize(self, state, event):
        if not self._busy(state):
            return None
        return replace(state, phase=Complete("Upload complete!"), gallery=event.item)

    def _on_upload_settled(self, state, event):
        if not isinstance(state.phase, Complete):
            return None
        return replace(state, phase=Idle())

    def _on_upload_fail(self, state, event):
        if not isinstance(state.phase, (Uploading, Processing)):
            return None
        gallery = event.preview if event.preview is not None else state.gallery
        return replace(
            state,
            phase=Failed("Upload failed. Please try again.", event.category),
            gallery=gallery,
            error=event.message,
        )

    def _on_error_expired(self, state, event):
        if not isinstance(state.phase, Failed):
            return None
        return replace(state, phase=Idle())

    def _on_pricing_requested(self, state, event):
        if self._busy(state):
            return None
        return replace(state, phase=Processing("Uploading image..."), error=None, price_result=None)

    def _on_gallery_updated(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(state, gallery=event.item)

    def _on_pricing_failed(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(
            state,
            phase=Failed("Failed to start analysis"),
            error=f"Failed to calculate price: {event.message}",
        )

    def _on_poll_started(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(
            state,
            phase=Processing("AI is analyzing your cake design..."),
            price_result=event.placeholder,
        )

    def _on_poll_tick(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(
            state,
            phase=Processing(
                f"AI is analyzing your cake design... (check {event.attempt}/{event.max_attempts})"
            ),
        )

    def _on_poll_found(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(state, phase=Complete(event.message), price_result=event.result, error=None)

    def _on_poll_timeout(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(
            state,
            phase=Complete("Processing may take longer - please refresh!"),
            price_result=event.result,
        )

    def _on_poll_failed(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(
            state,
            phase=Failed("Error occurred - please refresh!"),
            price_result=event.result,
        )

    def _on_refresh_started(self, state, event):
        if self._busy(state):
            return None
        return replace(state, phase=Processing("Refreshing pricing data..."))

    def _on_refresh_not_ready(self, state, event):
        if not isinstance(state.phase, Processing):
            return None
        return replace(state, phase=Idle(), error=event.message)

    def _on_dismiss(self, state, event):
        return replace(state, error=None)
