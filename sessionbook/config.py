"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info").upper()
VERSION = "0.1.0"

# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file (lock table + confirmed bookings)
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "sessionbook.db"))

# ── Google Calendar ───────────────────────────────────────────────────────

GOOGLE_CALENDAR_ID: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_SERVICE_ACCOUNT_EMAIL: str = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", "")
# PEM private key; literal "\n" sequences (as stored in most secret managers)
# are turned back into newlines.
GOOGLE_PRIVATE_KEY: str = os.getenv("GOOGLE_PRIVATE_KEY", "").replace("\\n", "\n")
# Workspace user the service account impersonates (domain-wide delegation).
GOOGLE_DELEGATED_USER: str = os.getenv("GOOGLE_DELEGATED_USER", "")

CALENDAR_TIMEZONE: str = os.getenv("CALENDAR_TIMEZONE", "America/Regina")

# Staff who are invited to every coaching session, comma separated.
STAFF_ATTENDEES: list[str] = [
    e.strip() for e in os.getenv("STAFF_ATTENDEES", "").split(",") if e.strip()
]

# Domain part of the iCalUID attached to every created event.
IDEMPOTENCY_DOMAIN: str = os.getenv("IDEMPOTENCY_DOMAIN", "sessionbook.local")

# Set to "google" or "memory". "auto" picks google when credentials are set
# and always in production.
_CALENDAR_BACKEND_OVERRIDE: str = os.getenv("CALENDAR_BACKEND", "auto")


def calendar_backend() -> str:
    """Which calendar provider the app talks to.

    Controlled by CALENDAR_BACKEND env var:
      • "auto" (default) – google if service-account credentials are configured
        or ENVIRONMENT is production, otherwise memory
      • "google" – always Google (bookings fail if credentials are missing)
      • "memory" – in-process calendar, for local development
    """
    override = _CALENDAR_BACKEND_OVERRIDE.lower()
    if override in ("google", "memory"):
        return override
    if GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY:
        return "google"
    if ENVIRONMENT == "production":
        # Missing credentials surface as failed bookings, not in-process ones.
        return "google"
    return "memory"


# Seconds before an in-flight provider call is abandoned.
PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "15"))

# ── Reservation locks ─────────────────────────────────────────────────────

LOCK_TTL_SECONDS: int = int(os.getenv("LOCK_TTL_SECONDS", "300"))

# How often expired lock rows are purged (seconds).
LOCK_JANITOR_INTERVAL: float = float(os.getenv("LOCK_JANITOR_INTERVAL", "60"))

# ── Pricing ───────────────────────────────────────────────────────────────

RATE_PER_HOUR: float = float(os.getenv("RATE_PER_HOUR", "95.0"))

# ── HTTP ──────────────────────────────────────────────────────────────────

CORS_ALLOW_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]
