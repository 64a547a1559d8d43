"""Tests for the conflict scanner."""

from datetime import date, datetime, time

from sessionbook.models import SlotInstance, WindowKey
from sessionbook.services.conflicts import is_conflicting, scan, window_conflicts
from sessionbook.services.slot_templates import slots_for
from tests.mocks.models import FRIDAY, TZ, make_event

_DAY = date(2030, 1, 4)


def _at(hhmm: str) -> datetime:
    hours, minutes = hhmm.split(":")
    return datetime.combine(_DAY, time(int(hours), int(minutes)), tzinfo=TZ)


def _slot(start: str, end: str) -> SlotInstance:
    return SlotInstance(
        slot_date=_DAY,
        start_time=_at(start).time(),
        end_time=_at(end).time(),
        duration_minutes=60,
        display=f"{start}-{end}",
    )


class TestIsConflicting:
    def test_event_starting_when_slot_ends_is_not_a_conflict(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("11:00"), _at("12:00")) is False

    def test_event_ending_when_slot_starts_is_not_a_conflict(self):
        assert is_conflicting(_at("11:00"), _at("12:00"), _at("10:00"), _at("11:00")) is False

    def test_partial_overlap(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("10:30"), _at("11:30")) is True

    def test_event_inside_slot(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("10:15"), _at("10:45")) is True

    def test_event_covers_slot(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("09:00"), _at("12:00")) is True

    def test_identical_interval(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("10:00"), _at("11:00")) is True

    def test_disjoint(self):
        assert is_conflicting(_at("10:00"), _at("11:00"), _at("13:00"), _at("14:00")) is False

    def test_compares_instants_across_timezones(self):
        from zoneinfo import ZoneInfo

        utc = ZoneInfo("UTC")
        # 10:00 Regina (UTC-6, no DST) is 16:00 UTC.
        event_start = datetime(2030, 1, 4, 16, 30, tzinfo=utc)
        event_end = datetime(2030, 1, 4, 17, 30, tzinfo=utc)
        assert is_conflicting(_at("10:00"), _at("11:00"), event_start, event_end) is True


class TestScan:
    def test_touching_event_leaves_slot_available(self):
        result = scan([_slot("10:00", "11:00")], [make_event(_DAY, "11:00", "12:00")], TZ)
        assert result[0].available is True

    def test_overlapping_event_marks_slot_unavailable(self):
        result = scan([_slot("10:00", "11:00")], [make_event(_DAY, "10:30", "11:30")], TZ)
        assert result[0].available is False

    def test_returns_new_instances(self):
        original = _slot("10:00", "11:00")
        result = scan([original], [make_event(_DAY, "10:30", "11:30")], TZ)
        assert original.available is True
        assert result[0] is not original

    def test_friday_with_one_meeting(self):
        slots = slots_for(FRIDAY)
        result = scan(slots, [make_event(FRIDAY, "12:30", "13:30")], TZ)
        assert [s.available for s in result] == [True, False, False, True, True]

    def test_no_events(self):
        slots = slots_for(FRIDAY)
        assert all(s.available for s in scan(slots, [], TZ))


class TestWindowConflicts:
    def test_returns_the_clashing_events(self):
        window = WindowKey(_DAY, time(13, 0), time(14, 0))
        events = [
            make_event(_DAY, "12:00", "13:00", event_id="before"),
            make_event(_DAY, "13:30", "14:30", event_id="clash"),
        ]
        assert [e.id for e in window_conflicts(window, events, TZ)] == ["clash"]
