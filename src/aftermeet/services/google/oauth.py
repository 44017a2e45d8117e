"""Google OAuth 2.0 client: consent URL, code exchange, refresh, and user info."""

from __future__ import annotations

from urllib.parse import urlencode

import httpx
import structlog

from src.aftermeet.accounts.schemas import TokenGrant
from src.aftermeet.services.oauth import (
    TIMEOUT,
    oauth_retry,
    parse_token_response,
    raise_for_oauth_status,
)

logger = structlog.get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

GOOGLE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar.readonly",
]


class GoogleOAuthClient:
    """OAuth client for linking additional Google calendar accounts.

    Args:
        client_id: Google OAuth client id.
        client_secret: Google OAuth client secret.
        redirect_uri: Callback URL registered with Google.
    """

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    def authorization_url(self, state: str) -> str:
        """Consent URL requesting offline access so a refresh token is issued."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    @oauth_retry
    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens.

        Raises:
            OAuthError: If Google rejects the code.
        """
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "redirect_uri": self._redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
        raise_for_oauth_status("google", response)
        return parse_token_response(response.json())

    @oauth_retry
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Obtain a new access token from a stored refresh token.

        Raises:
            OAuthError: If the refresh token is invalid or revoked.
        """
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        raise_for_oauth_status("google", response)
        grant = parse_token_response(response.json())
        logger.info("google.token_refreshed", expires_at=str(grant.expires_at))
        return grant

    @oauth_retry
    async def get_user_info(self, access_token: str) -> dict:
        """Return the Google profile (``id``, ``email``) for an access token."""
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        raise_for_oauth_status("google", response)
        return response.json()
