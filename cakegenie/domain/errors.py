from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    STORAGE = "storage"
    DATABASE = "database"
    NETWORK = "network"
    GENERIC = "generic"


class CakeGenieError(Exception):
    """Base class for all errors raised by the package."""


class ValidationError(CakeGenieError):
    """The selected file is not acceptable (type, size or dimensions)."""


class ConfigurationError(CakeGenieError):
    """Supabase credentials are missing or malformed."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TransportError(CakeGenieError):
    """A storage, database or network call failed. Retry by re-submitting."""


class StorageError(TransportError):
    pass


class DatabaseError(TransportError):
    pass


class NetworkError(TransportError):
    pass


class DecodeError(CakeGenieError):
    """Image bytes could not be decoded by any available decoder."""


class PollingTimeout(CakeGenieError):
    """Pricing did not appear within the polling budget."""

    def __init__(self, row_id: str, attempts: int) -> None:
        super().__init__(f"Pricing for {row_id} not ready after {attempts} attempts")
        self.row_id = row_id
        self.attempts = attempts


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.CONFIGURATION: "Service configuration error. Please check your settings and try again.",
    ErrorCategory.STORAGE: "File storage error. Please check your connection and try again.",
    ErrorCategory.DATABASE: "Database error. Please try again in a few moments.",
    ErrorCategory.NETWORK: "Network error. Please check your internet connection and try again.",
    ErrorCategory.GENERIC: "Upload failed. Please try again.",
}


def classify_error(exc: BaseException) -> tuple[ErrorCategory, str]:
    """Map an upload failure to a user-facing category and message."""
    if isinstance(exc, ConfigurationError):
        category = ErrorCategory.CONFIGURATION
    elif isinstance(exc, NetworkError):
        category = ErrorCategory.NETWORK
    elif isinstance(exc, StorageError):
        category = ErrorCategory.STORAGE
    elif isinstance(exc, DatabaseError):
        category = ErrorCategory.DATABASE
    else:
        category = ErrorCategory.GENERIC
    return category, USER_MESSAGES[category]
