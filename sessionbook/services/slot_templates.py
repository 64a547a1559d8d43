"""
Weekly slot templates for coaching sessions.

The schedule is small and hand-authored, so it lives here as data rather
than in the database. Everything in this module is pure: no I/O, no clock.
"""

from __future__ import annotations

from datetime import date, time

from sessionbook.models import SlotInstance, SlotTemplate

# Weekday numbering used throughout the booking flow: 0=Sunday … 6=Saturday.
SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)

_SESSION_MINUTES = 60

WEEKLY_SCHEDULE: dict[int, tuple[SlotTemplate, ...]] = {
    MONDAY: (
        SlotTemplate(MONDAY, time(11, 0), _SESSION_MINUTES),
    ),
    **{
        day: (
            SlotTemplate(day, time(11, 20), _SESSION_MINUTES),
            SlotTemplate(day, time(12, 45), _SESSION_MINUTES),
        )
        for day in (TUESDAY, WEDNESDAY, THURSDAY)
    },
    FRIDAY: tuple(
        SlotTemplate(FRIDAY, time(hour, 0), _SESSION_MINUTES)
        for hour in range(11, 16)
    ),
}


def weekday_of(day: date) -> int:
    """Sunday-based weekday number (Python's own weekday() is Monday-based)."""
    return (day.weekday() + 1) % 7


def _clock(t: time) -> str:
    """time(13, 0) → '1:00 PM'."""
    hour = t.hour % 12 or 12
    suffix = "AM" if t.hour < 12 else "PM"
    return f"{hour}:{t.minute:02d} {suffix}"


def display_label(template: SlotTemplate) -> str:
    """'11:00 AM - 12:00 PM (60 min)'."""
    return (
        f"{_clock(template.start_time)} - {_clock(template.end_time)} "
        f"({template.duration_minutes} min)"
    )


def templates_for(day: date) -> list[SlotTemplate]:
    """Templates for the weekday of *day*, ordered by start time."""
    return sorted(
        WEEKLY_SCHEDULE.get(weekday_of(day), ()),
        key=lambda t: t.start_time,
    )


def slots_for(day: date) -> list[SlotInstance]:
    """Instantiate the weekday's templates on *day*, all marked available."""
    return [
        SlotInstance(
            slot_date=day,
            start_time=t.start_time,
            end_time=t.end_time,
            duration_minutes=t.duration_minutes,
            display=display_label(t),
            available=True,
        )
        for t in templates_for(day)
    ]


def find_template(day: date, start: time, duration_minutes: int) -> SlotTemplate | None:
    """The template on *day* starting at *start* with that duration, if any."""
    for template in templates_for(day):
        if template.start_time == start and template.duration_minutes == duration_minutes:
            return template
    return None
