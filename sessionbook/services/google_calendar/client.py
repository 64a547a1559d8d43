"""
Low-level HTTP client for the Google Calendar v3 API.

Handles authentication headers, pagination, status-code mapping and
JSON ↔ Pydantic parsing. A single instance is shared across the app
lifetime.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from sessionbook.errors import (
    DuplicateEventError,
    ProviderRejected,
    ProviderUnavailable,
)
from sessionbook.services.google_calendar.api_models import Event, EventList
from sessionbook.services.google_calendar.auth import (
    ServiceAccountTokenProvider,
    TokenSigner,
)
from sessionbook.services.google_calendar.config import (
    DEFAULT_HEADERS,
    EVENTS_URL,
    MAX_RESULTS,
)

logger = logging.getLogger(__name__)


def _error_reason(resp: httpx.Response) -> str:
    """Google's error message, if the body has one."""
    try:
        payload = resp.json()
    except ValueError:
        return resp.reason_phrase
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message", resp.reason_phrase))
    return resp.reason_phrase


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.is_success:
        return
    reason = _error_reason(resp)
    if resp.status_code == 409:
        raise DuplicateEventError(f"duplicate event: {reason}", status_code=409)
    if resp.status_code >= 500 or resp.status_code == 429:
        raise ProviderUnavailable(
            f"Google Calendar returned {resp.status_code}: {reason}",
            status_code=resp.status_code,
        )
    raise ProviderRejected(
        f"Google Calendar returned {resp.status_code}: {reason}",
        status_code=resp.status_code,
    )


class GoogleCalendarClient:
    """Async HTTP client for one Google calendar."""

    def __init__(
        self,
        *,
        calendar_id: str,
        signer: TokenSigner,
        service_account_email: str,
        subject: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            transport=transport,
        )
        self._events_url = EVENTS_URL.format(calendar_id=quote(calendar_id, safe=""))
        self._tokens = ServiceAccountTokenProvider(
            signer,
            service_account_email=service_account_email,
            subject=subject,
            http=self._client,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authorised request; on 401 refresh the token and retry once."""
        for attempt in (1, 2):
            token = await self._tokens.get_access_token(force_refresh=attempt == 2)
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    **kwargs,
                )
            except httpx.TimeoutException as exc:
                raise ProviderUnavailable(f"{method} {url} timed out") from exc
            except httpx.TransportError as exc:
                raise ProviderUnavailable(f"{method} {url} failed: {exc}") from exc

            if resp.status_code == 401 and attempt == 1:
                logger.info("Google Calendar returned 401, refreshing token and retrying")
                continue
            _raise_for_status(resp)
            return resp
        raise AssertionError("unreachable")

    # ── events.list ───────────────────────────────────────────────────

    async def list_events(
        self,
        *,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        ical_uid: str | None = None,
    ) -> list[Event]:
        """
        Fetch all (non-deleted) events matching the filters.

        Follows nextPageToken until the listing is exhausted.
        """
        params: dict[str, Any] = {"singleEvents": "true", "maxResults": MAX_RESULTS}
        if time_min is not None:
            params["timeMin"] = time_min.isoformat()
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()
        if ical_uid is not None:
            params["iCalUID"] = ical_uid
        if time_min is not None and ical_uid is None:
            params["orderBy"] = "startTime"

        events: list[Event] = []
        page_token: str | None = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            resp = await self._request("GET", self._events_url, params=params)
            try:
                page = EventList.model_validate(resp.json())
            except (ValueError, ValidationError) as exc:
                raise ProviderUnavailable("events.list returned an unexpected body") from exc
            events.extend(page.items)
            page_token = page.nextPageToken
            if not page_token:
                break

        logger.debug("events.list returned %d events (params=%s)", len(events), params)
        return events

    # ── events.insert ─────────────────────────────────────────────────

    async def insert_event(self, body: dict[str, Any], *, send_updates: str = "all") -> Event:
        """Create an event. A duplicate iCalUID surfaces as DuplicateEventError."""
        resp = await self._request(
            "POST",
            self._events_url,
            params={"sendUpdates": send_updates},
            json=body,
        )
        try:
            return Event.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            # The event may exist now; the idempotency key catches a retry.
            raise ProviderUnavailable("events.insert returned an unexpected body") from exc
