"""Tests for the external calendar reconciler."""

from datetime import datetime, time

import pytest

from sessionbook.errors import ProviderRejected, ProviderUnavailable
from sessionbook.models import WindowKey
from sessionbook.services.orchestrator import plan_booking
from sessionbook.services.outcomes import ErrDoubleBooked, ErrExternal, Ok
from sessionbook.services.reconciler import CalendarReconciler, idempotency_key
from tests.mocks.models import FRIDAY, TODAY, TZ, TZ_NAME, make_booking_request, make_event
from tests.mocks.services import FailingCalendarProvider, SlowCalendarProvider


def _plan(slots=(("13:00", 60),)):
    request = make_booking_request(FRIDAY, slots)
    return request, plan_booking(request, today=TODAY, rate_per_hour=95.0)


@pytest.fixture()
def provider() -> FailingCalendarProvider:
    return FailingCalendarProvider()


@pytest.fixture()
def reconciler(provider) -> CalendarReconciler:
    return CalendarReconciler(
        provider, timezone=TZ_NAME, staff_attendees=["coach@example.com"], timeout=1.0
    )


class TestIdempotencyKey:
    def test_format(self):
        window = WindowKey(FRIDAY, time(13, 0), time(14, 0))
        assert idempotency_key(window, domain="example.org") == (
            "sped-2030-01-04-13:00:00-14:00:00@example.org"
        )

    def test_stable_for_same_window(self):
        a = WindowKey(FRIDAY, time(13, 0), time(14, 0))
        b = WindowKey(FRIDAY, time(13, 0), time(14, 0))
        assert idempotency_key(a) == idempotency_key(b)

    def test_differs_between_windows(self):
        a = WindowKey(FRIDAY, time(13, 0), time(14, 0))
        b = WindowKey(FRIDAY, time(14, 0), time(15, 0))
        assert idempotency_key(a) != idempotency_key(b)


class TestCheck:
    @pytest.mark.asyncio
    async def test_free_window(self, reconciler):
        _, plan = _plan()
        assert await reconciler.check(plan) is None

    @pytest.mark.asyncio
    async def test_existing_key_is_double_booked(self, reconciler, provider):
        _, plan = _plan()
        provider.add_event(
            make_event(FRIDAY, "13:00", "14:00", event_id="prior", idempotency_key=plan.idempotency_key)
        )
        result = await reconciler.check(plan)
        assert isinstance(result, ErrDoubleBooked)
        assert result.existing_event_id == "prior"

    @pytest.mark.asyncio
    async def test_overlapping_foreign_event_is_double_booked(self, reconciler, provider):
        _, plan = _plan()
        provider.add_event(make_event(FRIDAY, "13:30", "14:30", event_id="meeting"))
        result = await reconciler.check(plan)
        assert isinstance(result, ErrDoubleBooked)
        assert result.existing_event_id == "meeting"

    @pytest.mark.asyncio
    async def test_touching_event_is_not_a_conflict(self, reconciler, provider):
        _, plan = _plan()
        provider.add_event(make_event(FRIDAY, "14:00", "15:00"))
        assert await reconciler.check(plan) is None

    @pytest.mark.asyncio
    async def test_multi_slot_checks_each_slot(self, reconciler, provider):
        _, plan = _plan(slots=(("11:00", 60), ("14:00", 60)))
        # Falls in the gap between the two selected slots.
        provider.add_event(make_event(FRIDAY, "12:00", "13:00"))
        assert await reconciler.check(plan) is None

        provider.add_event(make_event(FRIDAY, "14:30", "15:00", event_id="late"))
        result = await reconciler.check(plan)
        assert isinstance(result, ErrDoubleBooked)
        assert result.window.start_time == time(14, 0)

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_retryable(self, reconciler, provider):
        provider.find_error = ProviderUnavailable("503 from Google", status_code=503)
        _, plan = _plan()
        result = await reconciler.check(plan)
        assert isinstance(result, ErrExternal)
        assert result.retryable is True
        assert result.status_code == 503

    @pytest.mark.asyncio
    async def test_rejected_provider_is_fatal(self, reconciler, provider):
        provider.list_error = ProviderRejected("403 from Google", status_code=403)
        _, plan = _plan()
        result = await reconciler.check(plan)
        assert isinstance(result, ErrExternal)
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        slow = SlowCalendarProvider(delay=0.5)
        reconciler = CalendarReconciler(slow, timezone=TZ_NAME, timeout=0.05)
        _, plan = _plan()
        result = await reconciler.check(plan)
        assert isinstance(result, ErrExternal)
        assert result.retryable is True


class TestDraft:
    def test_summary_and_times(self, reconciler):
        request, plan = _plan()
        draft = reconciler.build_draft(plan, request)
        assert draft.summary == "SPED Class - Dana Whitford"
        assert draft.idempotency_key == plan.idempotency_key
        assert draft.start == datetime(2030, 1, 4, 13, 0, tzinfo=TZ)
        assert draft.end == datetime(2030, 1, 4, 14, 0, tzinfo=TZ)
        assert draft.timezone == TZ_NAME

    def test_attendees_include_requester_and_staff(self, reconciler):
        request, plan = _plan()
        draft = reconciler.build_draft(plan, request)
        assert draft.attendees == ["dana.whitford@example.com", "coach@example.com"]

    def test_staff_not_duplicated(self, provider):
        reconciler = CalendarReconciler(
            provider, timezone=TZ_NAME, staff_attendees=["Dana.Whitford@example.com"]
        )
        request, plan = _plan()
        assert reconciler.build_draft(plan, request).attendees == ["dana.whitford@example.com"]

    def test_description_lists_booking_details(self, reconciler):
        request, plan = _plan(slots=(("13:00", 60), ("14:00", 60)))
        description = reconciler.build_draft(plan, request).description
        assert "School: Lakeview Elementary" in description
        assert "Students: 12" in description
        assert "Total Minutes: 120" in description
        assert "Total Cost: $190.00" in description

    def test_multi_slot_event_spans_selection(self, reconciler):
        request, plan = _plan(slots=(("11:00", 60), ("13:00", 60)))
        draft = reconciler.build_draft(plan, request)
        assert draft.start.time() == time(11, 0)
        assert draft.end.time() == time(14, 0)


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_event(self, reconciler, provider):
        request, plan = _plan()
        result = await reconciler.create(plan, request)
        assert isinstance(result, Ok)
        assert result.value.idempotency_key == plan.idempotency_key
        assert len(provider.events) == 1

    @pytest.mark.asyncio
    async def test_duplicate_key_is_double_booked(self, reconciler, provider):
        request, plan = _plan()
        await reconciler.create(plan, request)
        result = await reconciler.create(plan, request)
        assert isinstance(result, ErrDoubleBooked)
        assert len(provider.events) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self, reconciler, provider):
        provider.create_error = ProviderUnavailable("500", status_code=500)
        request, plan = _plan()
        result = await reconciler.create(plan, request)
        assert isinstance(result, ErrExternal)
        assert result.retryable is True

    @pytest.mark.asyncio
    async def test_client_error_is_fatal(self, reconciler, provider):
        provider.create_error = ProviderRejected("400", status_code=400)
        request, plan = _plan()
        result = await reconciler.create(plan, request)
        assert isinstance(result, ErrExternal)
        assert result.retryable is False
        assert result.status_code == 400
