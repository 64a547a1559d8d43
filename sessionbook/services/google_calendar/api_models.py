"""
Pydantic models that mirror the Google Calendar v3 event resource.

These are *internal* – the rest of the app never imports them directly.
The GoogleCalendarProvider translates them into sessionbook.models.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class EventDateTime(BaseModel):
    """Either `dateTime` (timed event) or `date` (all-day event) is set."""
    dateTime: datetime | None = None
    date_: date | None = Field(None, alias="date")
    timeZone: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class Attendee(BaseModel):
    email: str
    responseStatus: str | None = None


class ExtendedProperties(BaseModel):
    private: dict[str, str] = Field(default_factory=dict)
    shared: dict[str, str] = Field(default_factory=dict)


class Event(BaseModel):
    id: str
    status: str = "confirmed"  # "confirmed" | "tentative" | "cancelled"
    htmlLink: str | None = None
    iCalUID: str | None = None
    summary: str | None = None
    description: str | None = None
    start: EventDateTime
    end: EventDateTime
    attendees: list[Attendee] = Field(default_factory=list)
    extendedProperties: ExtendedProperties | None = None


class EventList(BaseModel):
    items: list[Event] = Field(default_factory=list)
    nextPageToken: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    expires_in: int = 3600
    token_type: str = "Bearer"
