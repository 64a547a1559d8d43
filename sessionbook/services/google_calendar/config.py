"""
Google Calendar integration configuration.

All the constants that describe how to talk to the Calendar v3 API and how
created events should look.
"""

from __future__ import annotations

# ── API endpoints ─────────────────────────────────────────────────────────

TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"

EVENTS_URL = f"{CALENDAR_API}/calendars/{{calendar_id}}/events"

SCOPE = "https://www.googleapis.com/auth/calendar"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Lifetime requested for the signed assertion (Google caps it at one hour).
ASSERTION_LIFETIME_SECONDS = 3600

# Refresh the access token this long before Google says it expires.
TOKEN_REFRESH_MARGIN_SECONDS = 60

# ── Events ────────────────────────────────────────────────────────────────

# Private extended property that mirrors the iCalUID, so the key survives
# even if a calendar client rewrites the UID on import.
IDEMPOTENCY_PROPERTY = "sessionbookKey"

REMINDERS: dict = {
    "useDefault": False,
    "overrides": [
        {"method": "email", "minutes": 1440},
        {"method": "popup", "minutes": 30},
    ],
}

# Page size for events.list; a single day rarely exceeds one page.
MAX_RESULTS = 250

# ── HTTP defaults ─────────────────────────────────────────────────────────

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "SessionBook/0.1",
    "Accept": "application/json",
}
