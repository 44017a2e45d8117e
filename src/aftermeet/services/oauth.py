"""Shared OAuth 2.0 helpers for provider clients.

Token endpoint calls retry on network failures only (tenacity, 3 attempts,
exponential backoff 1-10s); an HTTP error response from a token endpoint
(e.g. ``invalid_grant``) is permanent and surfaces as OAuthError.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.aftermeet.accounts.schemas import TokenGrant

oauth_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

TIMEOUT = 15.0


class OAuthError(Exception):
    """Code exchange, refresh, or user-info lookup failed."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


def parse_token_response(data: dict, now: datetime | None = None) -> TokenGrant:
    """Build a TokenGrant from a standard OAuth token endpoint response."""
    now = now or datetime.now(timezone.utc)
    expires_in = data.get("expires_in")
    return TokenGrant(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None,
    )


def raise_for_oauth_status(provider: str, response: httpx.Response) -> None:
    """Convert an error response from a token/userinfo endpoint to OAuthError."""
    if response.is_success:
        return
    try:
        body = response.json()
        detail = body.get("error_description") or body.get("error") or response.text
    except ValueError:
        detail = response.text
    raise OAuthError(provider, str(detail), status_code=response.status_code)
