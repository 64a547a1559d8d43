"""
Exception taxonomy for the reservation pipeline.

Provider and store adapters raise these; the orchestrator turns them into
tagged outcomes (see sessionbook.services.outcomes) so nothing above it ever
branches on an error message.
"""

from __future__ import annotations


class BookingValidationError(ValueError):
    """Malformed or impossible booking request. Rejected before any lock."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ── Calendar provider ─────────────────────────────────────────────────────


class CalendarProviderError(Exception):
    """Base class for failures talking to the external calendar."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailable(CalendarProviderError):
    """5xx, 429, timeout or transport failure. Safe to retry."""

    retryable = True


class ProviderRejected(CalendarProviderError):
    """Non-retryable 4xx (bad request, auth, permissions)."""


class DuplicateEventError(CalendarProviderError):
    """The provider already holds an event with the same idempotency key."""


# ── Booking store ─────────────────────────────────────────────────────────


class PersistFailure(Exception):
    """The confirmed booking could not be written to the local store."""
