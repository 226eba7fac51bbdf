"""
sleepsync exception hierarchy.

All sleepsync exceptions inherit from SleepSyncError, making it easy for consumers
to catch library-level errors while still distinguishing specific failure modes.
"""

from __future__ import annotations

from typing import Any


class SleepSyncError(Exception):
    """Base exception class for all sleepsync errors."""


class ConfigurationError(SleepSyncError):
    """Raised for configuration errors (missing keys, invalid values)."""


class APIError(SleepSyncError):
    """Raised for API communication errors."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RateLimitError(APIError):
    """Raised when the remote API answers HTTP 429."""


class AuthenticationError(SleepSyncError):
    """Raised for authentication errors (bad OAuth state, expired or revoked tokens)."""


class DataProcessingError(SleepSyncError):
    """Raised for data processing errors."""


class NoSleepDataError(DataProcessingError):
    """Raised when no configured source returned any sleep record."""


class MaterializationError(SleepSyncError):
    """Raised when an event could not be written into its document.

    Attributes:
        state: The writer state the failure happened in.
        path: Target document path, when known.
    """

    def __init__(self, message: str, state: Any = None, path: str | None = None):
        super().__init__(message)
        self.state = state
        self.path = path


class TemplateNotSettledError(MaterializationError):
    """Raised when a new document still holds template placeholders after all settle rounds."""


class StorageContentionError(MaterializationError):
    """Raised when reads or writes keep failing after all retries."""


class SyncCancelledError(SleepSyncError):
    """Raised inside a sync when its cancellation token fires."""


class SecretNotFoundError(SleepSyncError):
    """Raised when a required secret cannot be found in any provider."""
