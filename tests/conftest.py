"""
Shared test fixtures.

Provides:
  • a FastAPI TestClient wired to a temporary SQLite database (via the app
    lifespan) and an in-memory calendar (no external HTTP)
  • an open Database for tests that drive the services directly

The `client` fixture runs the full lifespan (DB init / shutdown) so the
lock table and booking store are real.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sessionbook.db import Database
from sessionbook.main import app
from sessionbook.services.memory_calendar import InMemoryCalendarProvider
from tests.mocks.models import TZ_NAME


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def calendar() -> InMemoryCalendarProvider:
    return InMemoryCalendarProvider(timezone=TZ_NAME)


@pytest.fixture()
def _test_env(monkeypatch, tmp_path, calendar):
    """
    Internal fixture that patches the DB path and the calendar factory so
    that the app lifespan runs cleanly against a temp database and the
    in-memory calendar.
    """
    # ── Temp database ─────────────────────────────────────────────────
    import sessionbook.db as db_mod

    monkeypatch.setattr(db_mod, "DB_PATH", str(tmp_path / "test.db"))

    # ── In-memory calendar ────────────────────────────────────────────
    monkeypatch.setattr("sessionbook.main.build_calendar_provider", lambda: calendar)

    # ── Disable rate limiting in tests ────────────────────────────────
    from sessionbook.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    return calendar


@pytest.fixture()
def client(_test_env) -> TestClient:
    """
    FastAPI TestClient with the in-memory calendar and a temp DB.

    Uses a context manager so the lifespan runs (DB init/shutdown).
    """
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
async def db(tmp_path):
    database = Database(str(tmp_path / "unit.db"))
    await database.connect()
    yield database
    await database.close()
