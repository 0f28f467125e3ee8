from __future__ import annotations


class CancellationToken:
    """Cooperative cancellation flag owned by one upload attempt or poll loop.

    Steps check ``cancelled`` before committing any externally visible effect.
    A cancelled token never becomes live again; callers create a new one.
    """

    __slots__ = ("_cancelled", "reason")

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def __repr__(self) -> str:
        state = f"cancelled ({self.reason})" if self._cancelled else "live"
        return f"<CancellationToken {state}>"
