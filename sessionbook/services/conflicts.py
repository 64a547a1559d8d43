"""
Conflict scanner – marks candidate slots that collide with existing events.

The result is advisory: it drives the slot listing only. The commit path
re-checks against the provider while holding the reservation lock.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, tzinfo

from sessionbook.models import ExternalCalendarEvent, SlotInstance, WindowKey


def is_conflicting(
    slot_start: datetime,
    slot_end: datetime,
    event_start: datetime,
    event_end: datetime,
) -> bool:
    """
    True when the slot and the event share any instant.

    Intervals are half-open. A slot that ends exactly when the event starts
    (or starts exactly when it ends) only touches it, which is not a conflict.
    """
    if slot_end == event_start or slot_start == event_end:
        return False
    return slot_start < event_end and slot_end > event_start


def window_conflicts(
    window: WindowKey,
    events: Iterable[ExternalCalendarEvent],
    tz: tzinfo,
) -> list[ExternalCalendarEvent]:
    """Events that overlap *window* when it is read in timezone *tz*."""
    start, end = window.start_at(tz), window.end_at(tz)
    return [ev for ev in events if is_conflicting(start, end, ev.start, ev.end)]


def scan(
    slots: Iterable[SlotInstance],
    events: Iterable[ExternalCalendarEvent],
    tz: tzinfo,
) -> list[SlotInstance]:
    """Return copies of *slots* with `available` set from the events."""
    events = list(events)
    return [
        slot.model_copy(update={"available": not window_conflicts(slot.window, events, tz)})
        for slot in slots
    ]
