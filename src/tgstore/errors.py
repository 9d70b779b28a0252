"""Custom exceptions for tgstore.

This module defines typed exceptions for the transport, catalog and facade
layers so callers can tell retryable failures from fatal ones.
"""

from typing import Optional


class StoreError(RuntimeError):
    """Base class for all tgstore errors."""
    pass


# Transport Errors
class TransportError(StoreError):
    """Network or HTTP failure talking to the channel (retryable)."""
    pass


class RateLimitedError(TransportError):
    """Channel throttled the request (retryable with backoff)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after:g}s)"
        super().__init__(message)


class AuthError(StoreError):
    """Credentials rejected by the channel (401/403). Never retried."""
    pass


class NotFoundError(StoreError):
    """Referenced blob is expired, invalid or missing."""
    pass


# Catalog Errors
class CatalogError(StoreError):
    """Base class for catalog synchronization errors."""
    pass


class CorruptCatalogError(CatalogError):
    """Catalog payload could not be decoded."""

    def __init__(self, file_id: str, reason: str):
        self.file_id = file_id
        self.reason = reason
        super().__init__(
            f"Catalog blob {file_id} is corrupt: {reason}. "
            f"Refusing to treat the channel as empty."
        )


class ConflictError(CatalogError):
    """Concurrent catalog writers could not be reconciled."""

    def __init__(self, attempts: int, expected: Optional[str], actual: Optional[str]):
        self.attempts = attempts
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Catalog moved during publish after {attempts} attempt(s). "
            f"Expected version: {expected or '(none)'}, "
            f"Got: {actual or '(none)'}"
        )


class CatalogWindowExhaustedError(CatalogError):
    """Lookback window filled up without containing any catalog."""

    def __init__(self, window: int):
        self.window = window
        super().__init__(
            f"No catalog found in the last {window} channel messages. "
            f"The catalog may be older than the lookback window; "
            f"increase lookback_window or set on_window_exhausted='warn'."
        )


# Facade Errors
class UnsupportedOperationError(StoreError, NotImplementedError):
    """Operation the channel cannot provide (open, update, remove, hash)."""

    def __init__(self, operation: str, name: Optional[str] = None):
        self.operation = operation
        self.name = name
        target = f" on '{name}'" if name else ""
        super().__init__(
            f"'{operation}'{target} is not supported: the channel has no "
            f"random-access read, in-place update, delete or hash primitive."
        )


class ReservedNameError(ValueError):
    """Object name collides with the reserved catalog name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"'{name}' is reserved for the catalog and cannot be used as an object name")


# Operation Control Errors
class OperationCancelledError(StoreError):
    """Caller cancelled the operation."""
    pass


class DeadlineExceededError(StoreError):
    """Caller deadline passed before the operation completed."""
    pass


# Configuration Errors
class ConfigError(StoreError):
    """Missing or invalid configuration."""
    pass
