"""
Service-account authentication for the Google Calendar API.

Google's JWT-bearer flow: sign an assertion with the service account's
private key, trade it at the token endpoint for a short-lived access token,
and reuse that token until shortly before it expires.

Signing sits behind the TokenSigner protocol so the token exchange can be
exercised in tests without real key material.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx
import jwt
from pydantic import ValidationError

from sessionbook.errors import ProviderRejected, ProviderUnavailable
from sessionbook.services.google_calendar.api_models import TokenResponse
from sessionbook.services.google_calendar.config import (
    ASSERTION_LIFETIME_SECONDS,
    JWT_BEARER_GRANT,
    SCOPE,
    TOKEN_REFRESH_MARGIN_SECONDS,
    TOKEN_URL,
)

logger = logging.getLogger(__name__)


class TokenSigner(Protocol):
    def sign(self, claims: dict[str, Any]) -> str:
        """Return a compact, signed JWT for *claims*."""
        ...


class ServiceAccountSigner:
    """RS256 signer backed by the service account's PEM private key."""

    def __init__(self, private_key: str, *, key_id: str | None = None) -> None:
        self._private_key = private_key
        self._key_id = key_id

    def sign(self, claims: dict[str, Any]) -> str:
        if not self._private_key:
            raise ProviderRejected("Google private key not configured")
        headers = {"kid": self._key_id} if self._key_id else None
        try:
            return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise ProviderRejected("Google private key could not be used for signing") from exc


class ServiceAccountTokenProvider:
    """
    Hands out a valid access token, refreshing it on demand.

    Concurrent callers share one refresh: the lock is only taken when the
    cached token is missing or about to expire.
    """

    def __init__(
        self,
        signer: TokenSigner,
        *,
        service_account_email: str,
        http: httpx.AsyncClient,
        subject: str | None = None,
        scope: str = SCOPE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signer = signer
        self._issuer = service_account_email
        self._subject = subject
        self._scope = scope
        self._http = http
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def build_claims(self) -> dict[str, Any]:
        now = int(self._clock())
        claims: dict[str, Any] = {
            "iss": self._issuer,
            "scope": self._scope,
            "aud": TOKEN_URL,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        if self._subject:
            claims["sub"] = self._subject
        return claims

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        if not force_refresh and self._is_fresh():
            return self._token  # type: ignore[return-value]
        async with self._lock:
            if not force_refresh and self._is_fresh():
                return self._token  # type: ignore[return-value]
            await self._refresh()
            return self._token  # type: ignore[return-value]

    async def _refresh(self) -> None:
        assertion = self._signer.sign(self.build_claims())
        try:
            resp = await self._http.post(
                TOKEN_URL,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(f"token request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise ProviderUnavailable(f"token request failed: {exc}") from exc

        if resp.status_code >= 500 or resp.status_code == 429:
            raise ProviderUnavailable(
                f"token endpoint returned {resp.status_code}", status_code=resp.status_code
            )
        if resp.status_code >= 400:
            # Body may echo the assertion; keep it out of the message.
            raise ProviderRejected(
                f"token exchange rejected ({resp.status_code})", status_code=resp.status_code
            )

        try:
            token = TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise ProviderUnavailable("token endpoint returned an unexpected body") from exc

        self._token = token.access_token
        self._expires_at = self._clock() + token.expires_in - TOKEN_REFRESH_MARGIN_SECONDS
        logger.info("Google access token refreshed (valid for %ds)", token.expires_in)
