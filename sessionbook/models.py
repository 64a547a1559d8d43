"""
Domain and wire models for the coaching-session reservation service.

Internal value types (window keys, slot templates, booking plans) are frozen
dataclasses; everything that crosses the HTTP boundary or the database is a
Pydantic model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, RootModel, field_validator

_HHMM = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"


def parse_hhmm(value: str) -> time:
    """'11:20' → time(11, 20)."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def add_minutes(start: time, minutes: int) -> time:
    """Wall-clock addition on a bare time. Slots never cross midnight."""
    total = start.hour * 60 + start.minute + minutes
    if total >= 24 * 60:
        raise ValueError(f"{start} + {minutes} min crosses midnight")
    return time(total // 60, total % 60)


# ══════════════════════════════════════════════════════════════════════════
#                         INTERNAL VALUE TYPES
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, order=True)
class WindowKey:
    """The (date, start, end) triple identifying a bookable interval."""

    booking_date: date
    start_time: time
    end_time: time

    def __str__(self) -> str:
        return f"{self.booking_date.isoformat()} {self.start_time:%H:%M:%S}-{self.end_time:%H:%M:%S}"

    def start_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.booking_date, self.start_time, tzinfo=tz)

    def end_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.booking_date, self.end_time, tzinfo=tz)


@dataclass(frozen=True)
class SlotTemplate:
    """One hand-authored weekly slot. weekday: 0=Sunday … 6=Saturday."""

    weekday: int
    start_time: time
    duration_minutes: int

    @property
    def end_time(self) -> time:
        return add_minutes(self.start_time, self.duration_minutes)


@dataclass(frozen=True)
class BookingPlan:
    """Server-side derivation of a BookingRequest, computed before locking."""

    window: WindowKey
    lock_windows: tuple[WindowKey, ...]
    total_minutes: int
    rate_per_hour: float
    total_cost: float
    idempotency_key: str


# ══════════════════════════════════════════════════════════════════════════
#                              SLOTS
# ══════════════════════════════════════════════════════════════════════════


class SlotInstance(BaseModel):
    """A template instantiated for a concrete date, with availability."""

    model_config = ConfigDict(frozen=True)

    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    display: str
    available: bool = True

    @property
    def window(self) -> WindowKey:
        return WindowKey(self.slot_date, self.start_time, self.end_time)


class SlotView(BaseModel):
    """Wire shape of one slot in a getSlots response."""

    model_config = ConfigDict(populate_by_name=True)

    start: str = Field(..., alias="time", description="Start time (HH:MM)")
    display: str
    available: bool
    duration_minutes: int = Field(..., alias="durationMinutes")

    @classmethod
    def from_instance(cls, slot: SlotInstance) -> SlotView:
        return cls(
            start=slot.start_time.strftime("%H:%M"),
            display=slot.display,
            available=slot.available,
            duration_minutes=slot.duration_minutes,
        )


# ══════════════════════════════════════════════════════════════════════════
#                           BOOKING REQUEST
# ══════════════════════════════════════════════════════════════════════════


class Requester(BaseModel):
    """Contact details of the person booking the session."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=3, max_length=40)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Institution(BaseModel):
    """Where the session takes place."""

    name: str = Field(..., min_length=1, max_length=200)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: str | None = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    province: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    school_system: str | None = Field(None, max_length=100)

    @property
    def one_line(self) -> str:
        return f"{self.name}, {self.address_line1}, {self.city}, {self.province}"


class SessionDetails(BaseModel):
    number_of_students: int = Field(1, ge=1, le=1000)
    grade_level: str | None = Field(None, max_length=50)
    preferred_coach: str | None = Field(None, max_length=100)
    special_requirements: str | None = Field(None, max_length=2000)


class SelectedSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: str = Field(..., alias="time", pattern=_HHMM, description="Start time (HH:MM)")
    duration_minutes: int = Field(60, alias="durationMinutes", ge=15, le=480)

    @property
    def start_time(self) -> time:
        return parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return add_minutes(self.start_time, self.duration_minutes)


class BookingRequest(BaseModel):
    """One commit attempt's payload. Never stored as-is."""

    requester: Requester
    location: Institution
    booking_date: date
    selected_slots: list[SelectedSlot] = Field(..., min_length=1)
    details: SessionDetails = Field(default_factory=SessionDetails)

    @field_validator("selected_slots")
    @classmethod
    def _no_duplicate_slots(cls, slots: list[SelectedSlot]) -> list[SelectedSlot]:
        starts = [s.start for s in slots]
        if len(set(starts)) != len(starts):
            raise ValueError("the same slot was selected more than once")
        return sorted(slots, key=lambda s: s.start)


# ══════════════════════════════════════════════════════════════════════════
#                          EXTERNAL CALENDAR
# ══════════════════════════════════════════════════════════════════════════


class EventDraft(BaseModel):
    """Everything needed to create one event at the provider."""

    idempotency_key: str
    summary: str
    description: str
    location: str
    start: datetime
    end: datetime
    timezone: str
    attendees: list[str] = Field(default_factory=list)


class ExternalCalendarEvent(BaseModel):
    """An event as the provider reports it. Never mutated by this service."""

    id: str
    link: str | None = None
    idempotency_key: str | None = None
    summary: str | None = None
    description: str | None = None
    start: datetime
    end: datetime
    attendees: list[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
#                             PERSISTENCE
# ══════════════════════════════════════════════════════════════════════════


class ReservationLock(BaseModel):
    booking_date: date
    start_time: time
    end_time: time
    held_by: str
    expires_at: float  # unix timestamp


class ConfirmedBooking(BaseModel):
    """Durable record of a booking whose external event exists."""

    id: UUID
    requester: Requester
    location: Institution
    details: SessionDetails
    booking_date: date
    booking_time_start: time
    booking_time_end: time
    selected_slots: list[SelectedSlot]
    total_minutes: int
    rate_per_hour: float
    total_cost: float
    idempotency_key: str
    external_event_id: str
    external_event_link: str | None = None
    status: Literal["confirmed"] = "confirmed"
    created_at: datetime


# ══════════════════════════════════════════════════════════════════════════
#                             RPC ENVELOPE
# ══════════════════════════════════════════════════════════════════════════


class GetSlotsAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["getSlots"]
    day: date = Field(..., alias="date", description="YYYY-MM-DD")


class BookSlotAction(BaseModel):
    action: Literal["bookSlot"]
    booking: BookingRequest


class BookingAction(
    RootModel[Annotated[Union[GetSlotsAction, BookSlotAction], Field(discriminator="action")]]
):
    """Request body of the RPC endpoint, dispatched on `action`."""


class SlotsResponse(BaseModel):
    success: bool = True
    slots: list[SlotView]


class BookingConfirmation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    event_id: str = Field(..., alias="eventId")
    event_link: str | None = Field(None, alias="eventLink")
    booking_id: UUID = Field(..., alias="bookingId")
    message: str = "Booking confirmed"


class BookingFailure(BaseModel):
    success: bool = False
    code: str
    error: str
    retryable: bool | None = None
    details: dict | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    calendar_backend: str
