"""
Tagged outcomes returned by each stage of the booking pipeline.

Every stage hands back one of a small closed set of variants, so callers
branch on the type (``match`` / ``isinstance``) instead of on error text.
Each failure variant carries the caller-facing ``code`` and whether the
whole operation may be retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, TypeVar, Union

from sessionbook.models import ConfirmedBooking, ExternalCalendarEvent, WindowKey

T = TypeVar("T")


class BookingState(str, Enum):
    REQUESTED = "REQUESTED"
    LOCK_ACQUIRED = "LOCK_ACQUIRED"
    RECONCILED = "RECONCILED"
    EVENT_CREATED = "EVENT_CREATED"
    PERSISTED = "PERSISTED"
    RELEASED = "RELEASED"
    # failure exits
    LOCK_DENIED = "LOCK_DENIED"
    DOUBLE_BOOKED = "DOUBLE_BOOKED"
    EXTERNAL_FAILURE = "EXTERNAL_FAILURE"
    PERSIST_FAILURE = "PERSIST_FAILURE"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class ErrLockDenied:
    window: WindowKey

    code: ClassVar[str] = "SLOT_HELD"
    exit_state: ClassVar[BookingState] = BookingState.LOCK_DENIED
    retryable: ClassVar[bool] = True
    message: ClassVar[str] = (
        "This time slot is being booked by someone else right now. Please try again shortly."
    )


@dataclass(frozen=True)
class ErrDoubleBooked:
    window: WindowKey
    existing_event_id: str | None = None

    code: ClassVar[str] = "DOUBLE_BOOKED"
    exit_state: ClassVar[BookingState] = BookingState.DOUBLE_BOOKED
    retryable: ClassVar[bool] = False
    message: ClassVar[str] = (
        "This time slot was just booked by someone else. Please pick another available time."
    )


@dataclass(frozen=True)
class ErrExternal:
    """The calendar provider failed. *reason* is for logs, never for clients."""

    reason: str
    retryable: bool = True
    status_code: int | None = None

    code: ClassVar[str] = "EXTERNAL_FAILURE"
    exit_state: ClassVar[BookingState] = BookingState.EXTERNAL_FAILURE

    @property
    def message(self) -> str:
        if self.retryable:
            return "The calendar service is temporarily unavailable. Please try again."
        return "The calendar service rejected this booking."


@dataclass(frozen=True)
class ErrPersist:
    """The external event exists but the local record could not be written."""

    event: ExternalCalendarEvent
    reason: str

    code: ClassVar[str] = "PERSIST_FAILURE"
    exit_state: ClassVar[BookingState] = BookingState.PERSIST_FAILURE
    retryable: ClassVar[bool] = False
    message: ClassVar[str] = (
        "Your booking could not be saved. Our staff have been notified; "
        "please do not book again for this time."
    )


StageFailure = Union[ErrLockDenied, ErrDoubleBooked, ErrExternal, ErrPersist]
CommitResult = Union[Ok[ConfirmedBooking], StageFailure]
