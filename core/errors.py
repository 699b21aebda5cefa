"""Error taxonomy shared by the client queue and the sync server."""
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for every sync failure; ``status_code`` is the HTTP mapping."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(SyncError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ValidationError(SyncError):
    status_code = 400


class RateLimitError(SyncError):
    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded. Try again later.",
        *,
        retry_after: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.headers = dict(headers or {})


UNKNOWN_ACTION_PREFIX = "Unknown action: "


class UnknownActionError(SyncError):
    """No handler (client) or domain function (server) exists for an action.

    Retrying cannot help, so callers mark the operation failed right away.
    """

    status_code = 404

    def __init__(self, action: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"{UNKNOWN_ACTION_PREFIX}{action}")
        self.action = action


HandlerMissingError = UnknownActionError


class DomainError(SyncError):
    status_code = 422


class MaxRetriesExceededError(SyncError):
    def __init__(self, op_id: int, retries: int, last_error: Optional[str] = None) -> None:
        super().__init__(f"Operation {op_id} failed after {retries} attempts: {last_error or 'unknown error'}")
        self.op_id = op_id
        self.retries = retries
        self.last_error = last_error


class QueueUnavailableError(SyncError):
    """The local queue storage cannot be used; treat as "no queue available"."""


class TransportError(SyncError):
    """The server could not be reached or answered outside the protocol."""

    status_code = 503


__all__ = [
    "SyncError",
    "AuthenticationError",
    "ValidationError",
    "RateLimitError",
    "UNKNOWN_ACTION_PREFIX",
    "UnknownActionError",
    "HandlerMissingError",
    "DomainError",
    "MaxRetriesExceededError",
    "QueueUnavailableError",
    "TransportError",
]
