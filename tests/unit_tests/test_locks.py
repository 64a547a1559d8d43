"""Tests for the reservation lock manager and its SQLite store."""

import asyncio
from datetime import time

import pytest

from sessionbook.models import WindowKey
from sessionbook.services.locks import LockJanitor, ReservationLockManager
from tests.mocks.models import FRIDAY
from tests.mocks.services import FakeClock

WINDOW = WindowKey(FRIDAY, time(13, 0), time(14, 0))
OTHER = WindowKey(FRIDAY, time(14, 0), time(15, 0))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def locks(db, clock) -> ReservationLockManager:
    return ReservationLockManager(db, ttl_seconds=300, clock=clock)


class TestAcquire:
    @pytest.mark.asyncio
    async def test_first_acquire_wins(self, locks, db):
        assert await locks.acquire(WINDOW, "holder-a") is True
        lock = await db.get_lock(WINDOW)
        assert lock is not None
        assert lock.held_by == "holder-a"

    @pytest.mark.asyncio
    async def test_live_lock_denies_second_holder(self, locks, db):
        assert await locks.acquire(WINDOW, "holder-a") is True
        assert await locks.acquire(WINDOW, "holder-b") is False
        assert (await db.get_lock(WINDOW)).held_by == "holder-a"

    @pytest.mark.asyncio
    async def test_same_holder_is_also_denied(self, locks):
        assert await locks.acquire(WINDOW, "holder-a") is True
        assert await locks.acquire(WINDOW, "holder-a") is False

    @pytest.mark.asyncio
    async def test_windows_are_independent(self, locks):
        assert await locks.acquire(WINDOW, "holder-a") is True
        assert await locks.acquire(OTHER, "holder-b") is True

    @pytest.mark.asyncio
    async def test_concurrent_acquires_have_one_winner(self, locks):
        results = await asyncio.gather(
            *(locks.acquire(WINDOW, f"holder-{i}") for i in range(10))
        )
        assert results.count(True) == 1


class TestTtl:
    @pytest.mark.asyncio
    async def test_unreleased_lock_blocks_until_ttl(self, locks, clock):
        assert await locks.acquire(WINDOW, "crashed") is True
        clock.advance(299)
        assert await locks.acquire(WINDOW, "next") is False

    @pytest.mark.asyncio
    async def test_unreleased_lock_acquirable_after_ttl(self, locks, db, clock):
        assert await locks.acquire(WINDOW, "crashed") is True
        clock.advance(300)
        assert await locks.acquire(WINDOW, "next") is True
        assert (await db.get_lock(WINDOW)).held_by == "next"

    @pytest.mark.asyncio
    async def test_per_call_ttl(self, locks, clock):
        assert await locks.acquire(WINDOW, "short", ttl_seconds=5) is True
        clock.advance(5)
        assert await locks.acquire(WINDOW, "next") is True


class TestRelease:
    @pytest.mark.asyncio
    async def test_release_frees_window(self, locks, db):
        await locks.acquire(WINDOW, "holder-a")
        await locks.release(WINDOW)
        assert await db.get_lock(WINDOW) is None
        assert await locks.acquire(WINDOW, "holder-b") is True

    @pytest.mark.asyncio
    async def test_release_without_acquire_is_noop(self, locks, db):
        await locks.release(WINDOW)
        await locks.release(WINDOW)
        assert await db.get_lock(WINDOW) is None


class TestJanitor:
    @pytest.mark.asyncio
    async def test_purge_removes_only_expired(self, locks, db, clock):
        await locks.acquire(WINDOW, "old", ttl_seconds=10)
        await locks.acquire(OTHER, "fresh", ttl_seconds=600)
        clock.advance(60)

        assert await locks.purge_expired() == 1
        assert await db.get_lock(WINDOW) is None
        assert await db.get_lock(OTHER) is not None

    @pytest.mark.asyncio
    async def test_janitor_sweep_purges(self, locks, db, clock):
        await locks.acquire(WINDOW, "old", ttl_seconds=10)
        clock.advance(60)

        janitor = LockJanitor(locks, interval=3600)
        assert await janitor.sweep() == 1
        assert await db.get_lock(WINDOW) is None

    @pytest.mark.asyncio
    async def test_janitor_start_stop(self, locks):
        janitor = LockJanitor(locks, interval=3600)
        await janitor.start()
        assert janitor.running is True
        await janitor.stop()
        assert janitor.running is False

    @pytest.mark.asyncio
    async def test_janitor_survives_unexpected_sweep_error(self, caplog):
        class _FlakyLocks:
            def __init__(self) -> None:
                self.calls = 0

            async def purge_expired(self) -> int:
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("disk went away")
                return 0

        flaky = _FlakyLocks()
        janitor = LockJanitor(flaky, interval=0.01)
        await janitor.start()
        for _ in range(100):
            if flaky.calls >= 2:
                break
            await asyncio.sleep(0.01)

        assert flaky.calls >= 2
        assert janitor.running is True
        assert "Lock sweep failed" in caplog.text
        await janitor.stop()
        assert janitor.running is False
