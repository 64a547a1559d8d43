"""
Reservation lock manager – short-lived mutual exclusion per window key.

Acquisition is delegated to the store's single atomic acquire-if-free
statement; this class never reads a lock and then writes it. A holder that
crashes is bounded by the TTL: once it passes, the next committer takes the
row over. Duplicate external events in that overlap are prevented by the
idempotency check in the reconciler, not here.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Protocol

from sessionbook.config import LOCK_JANITOR_INTERVAL, LOCK_TTL_SECONDS
from sessionbook.models import WindowKey

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class LockStore(Protocol):
    """What the lock manager needs from the backing store."""

    async def try_acquire_lock(
        self, window: WindowKey, holder: str, ttl_seconds: float, now: float
    ) -> bool: ...

    async def release_lock(self, window: WindowKey) -> None: ...

    async def purge_expired_locks(self, now: float) -> int: ...


class ReservationLockManager:
    def __init__(
        self,
        store: LockStore,
        *,
        ttl_seconds: float = LOCK_TTL_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def acquire(
        self,
        window: WindowKey,
        holder_id: str,
        ttl_seconds: float | None = None,
    ) -> bool:
        """True only if no live lock existed for *window*."""
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        acquired = await self._store.try_acquire_lock(window, holder_id, ttl, self._clock())
        if acquired:
            logger.debug("Lock %s acquired by %s (ttl=%ss)", window, holder_id, ttl)
        else:
            logger.info("Lock %s denied to %s – held by another committer", window, holder_id)
        return acquired

    async def release(self, window: WindowKey) -> None:
        """Delete the lock row unconditionally. Safe if it was never acquired."""
        await self._store.release_lock(window)
        logger.debug("Lock %s released", window)

    async def purge_expired(self) -> int:
        return await self._store.purge_expired_locks(self._clock())


class LockJanitor:
    """
    Periodically deletes expired lock rows so the table stays small.

    Acquisition never depends on it: an expired row is taken over by the
    acquire statement whether or not the janitor has run.
    """

    def __init__(
        self,
        locks: ReservationLockManager,
        *,
        interval: float = LOCK_JANITOR_INTERVAL,
    ) -> None:
        self._locks = locks
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> int:
        removed = await self._locks.purge_expired()
        if removed:
            logger.info("Purged %d expired reservation locks", removed)
        return removed

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="lock-janitor")
        logger.info("Lock janitor started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Lock janitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Lock sweep failed, retrying in %ss", self._interval)
