"""
SQLite database layer using aiosqlite.

Stores reservation locks and confirmed bookings.
Tables are created automatically on first connect.

One Database instance is opened by the app lifespan and handed to the
services that need it; nothing reaches for a module-level connection.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time
from pathlib import Path
from uuid import UUID

import aiosqlite

from sessionbook.config import DB_PATH
from sessionbook.models import (
    ConfirmedBooking,
    Institution,
    Requester,
    ReservationLock,
    SelectedSlot,
    SessionDetails,
    WindowKey,
)

logger = logging.getLogger(__name__)


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reservation_locks (
    booking_date    TEXT NOT NULL,
    start_time      TEXT NOT NULL,
    end_time        TEXT NOT NULL,
    held_by         TEXT NOT NULL,
    expires_at      REAL NOT NULL,      -- unix timestamp
    PRIMARY KEY (booking_date, start_time, end_time)
);

CREATE INDEX IF NOT EXISTS idx_locks_expiry ON reservation_locks(expires_at);

CREATE TABLE IF NOT EXISTS confirmed_bookings (
    id                  TEXT PRIMARY KEY,
    requester_json      TEXT NOT NULL,
    requester_email     TEXT NOT NULL,
    location_json       TEXT NOT NULL,
    institution_name    TEXT NOT NULL,
    details_json        TEXT NOT NULL,
    booking_date        TEXT NOT NULL,
    booking_time_start  TEXT NOT NULL,
    booking_time_end    TEXT NOT NULL,
    selected_slots      TEXT NOT NULL,  -- JSON array of {time, durationMinutes}
    total_minutes       INTEGER NOT NULL,
    rate_per_hour       REAL NOT NULL,
    total_cost          REAL NOT NULL,
    idempotency_key     TEXT NOT NULL,
    external_event_id   TEXT NOT NULL,
    external_event_link TEXT,
    status              TEXT NOT NULL CHECK (status IN ('confirmed', 'cancelled')),
    created_at          TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_live_window
    ON confirmed_bookings(booking_date, booking_time_start, booking_time_end)
    WHERE status = 'confirmed';

CREATE INDEX IF NOT EXISTS idx_bookings_date ON confirmed_bookings(booking_date);
"""

# Atomic acquire-if-free. Inserts the lock, or takes over an existing row
# only when it has expired. rowcount is 1 on success, 0 when a live lock
# blocked the upsert.
_TRY_ACQUIRE_LOCK = """
INSERT INTO reservation_locks (booking_date, start_time, end_time, held_by, expires_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (booking_date, start_time, end_time) DO UPDATE SET
    held_by = excluded.held_by,
    expires_at = excluded.expires_at
WHERE reservation_locks.expires_at <= ?
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _hms(t: time) -> str:
    return t.strftime("%H:%M:%S")


def _window_params(window: WindowKey) -> tuple[str, str, str]:
    return (window.booking_date.isoformat(), _hms(window.start_time), _hms(window.end_time))


def _row_to_lock(row: aiosqlite.Row) -> ReservationLock:
    return ReservationLock(
        booking_date=date.fromisoformat(row["booking_date"]),
        start_time=time.fromisoformat(row["start_time"]),
        end_time=time.fromisoformat(row["end_time"]),
        held_by=row["held_by"],
        expires_at=row["expires_at"],
    )


def _row_to_booking(row: aiosqlite.Row) -> ConfirmedBooking:
    """Convert a database row to a ConfirmedBooking model."""
    return ConfirmedBooking(
        id=UUID(row["id"]),
        requester=Requester.model_validate_json(row["requester_json"]),
        location=Institution.model_validate_json(row["location_json"]),
        details=SessionDetails.model_validate_json(row["details_json"]),
        booking_date=date.fromisoformat(row["booking_date"]),
        booking_time_start=time.fromisoformat(row["booking_time_start"]),
        booking_time_end=time.fromisoformat(row["booking_time_end"]),
        selected_slots=[SelectedSlot.model_validate(s) for s in json.loads(row["selected_slots"])],
        total_minutes=row["total_minutes"],
        rate_per_hour=row["rate_per_hour"],
        total_cost=row["total_cost"],
        idempotency_key=row["idempotency_key"],
        external_event_id=row["external_event_id"],
        external_event_link=row["external_event_link"],
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class Database:
    """Owns the aiosqlite connection and the SQL for both tables."""

    def __init__(self, path: str | None = None) -> None:
        self._path = path or DB_PATH
        self._conn: aiosqlite.Connection | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the database and create tables if they don't exist."""
        db_path = Path(self._path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(db_path))
        self._conn.row_factory = aiosqlite.Row  # dict-like rows
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA busy_timeout=5000")

        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        logger.info("Database initialized at %s", db_path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        assert self._conn is not None, "Database not initialized, call connect() first"
        return self._conn

    async def ping(self) -> bool:
        try:
            async with self.conn.execute("SELECT 1") as cur:
                return (await cur.fetchone()) is not None
        except aiosqlite.Error:
            logger.exception("Database ping failed")
            return False

    # ══════════════════════════════════════════════════════════════════
    #                    RESERVATION LOCK REPOSITORY
    # ══════════════════════════════════════════════════════════════════

    async def try_acquire_lock(
        self,
        window: WindowKey,
        holder: str,
        ttl_seconds: float,
        now: float,
    ) -> bool:
        """Single-statement acquire. True only if no live lock existed."""
        cur = await self.conn.execute(
            _TRY_ACQUIRE_LOCK,
            (*_window_params(window), holder, now + ttl_seconds, now),
        )
        acquired = cur.rowcount == 1
        await cur.close()
        await self.conn.commit()
        return acquired

    async def release_lock(self, window: WindowKey) -> None:
        """Delete the lock row. A no-op when no row exists."""
        await self.conn.execute(
            """
            DELETE FROM reservation_locks
            WHERE booking_date = ? AND start_time = ? AND end_time = ?
            """,
            _window_params(window),
        )
        await self.conn.commit()

    async def get_lock(self, window: WindowKey) -> ReservationLock | None:
        async with self.conn.execute(
            """
            SELECT * FROM reservation_locks
            WHERE booking_date = ? AND start_time = ? AND end_time = ?
            """,
            _window_params(window),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_lock(row) if row else None

    async def purge_expired_locks(self, now: float) -> int:
        """Delete every expired lock row. Returns how many were removed."""
        cur = await self.conn.execute(
            "DELETE FROM reservation_locks WHERE expires_at <= ?", (now,)
        )
        removed = cur.rowcount
        await cur.close()
        await self.conn.commit()
        return removed

    # ══════════════════════════════════════════════════════════════════
    #                    CONFIRMED BOOKING REPOSITORY
    # ══════════════════════════════════════════════════════════════════

    async def insert_booking(self, booking: ConfirmedBooking) -> None:
        """Insert a confirmed booking. Raises aiosqlite.Error on failure."""
        await self.conn.execute(
            """
            INSERT INTO confirmed_bookings (
                id, requester_json, requester_email, location_json, institution_name,
                details_json, booking_date, booking_time_start, booking_time_end,
                selected_slots, total_minutes, rate_per_hour, total_cost,
                idempotency_key, external_event_id, external_event_link,
                status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(booking.id),
                booking.requester.model_dump_json(),
                booking.requester.email,
                booking.location.model_dump_json(),
                booking.location.name,
                booking.details.model_dump_json(),
                booking.booking_date.isoformat(),
                _hms(booking.booking_time_start),
                _hms(booking.booking_time_end),
                json.dumps([s.model_dump(by_alias=True) for s in booking.selected_slots]),
                booking.total_minutes,
                booking.rate_per_hour,
                booking.total_cost,
                booking.idempotency_key,
                booking.external_event_id,
                booking.external_event_link,
                booking.status,
                booking.created_at.isoformat(),
            ),
        )
        await self.conn.commit()

    async def get_booking(self, booking_id: UUID | str) -> ConfirmedBooking | None:
        async with self.conn.execute(
            "SELECT * FROM confirmed_bookings WHERE id = ?", (str(booking_id),)
        ) as cur:
            row = await cur.fetchone()
        return _row_to_booking(row) if row else None

    async def find_booking_by_window(self, window: WindowKey) -> ConfirmedBooking | None:
        """The live confirmed booking for exactly this window, if any."""
        async with self.conn.execute(
            """
            SELECT * FROM confirmed_bookings
            WHERE booking_date = ? AND booking_time_start = ? AND booking_time_end = ?
              AND status = 'confirmed'
            """,
            _window_params(window),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_booking(row) if row else None

    async def list_bookings_for_date(self, day: date) -> list[ConfirmedBooking]:
        async with self.conn.execute(
            """
            SELECT * FROM confirmed_bookings
            WHERE booking_date = ? AND status = 'confirmed'
            ORDER BY booking_time_start
            """,
            (day.isoformat(),),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_booking(r) for r in rows]
