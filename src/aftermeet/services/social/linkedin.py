"""LinkedIn OAuth and UGC post publishing.

Publishing uses the v2 ``ugcPosts`` endpoint with the member URN built from
the OpenID ``sub`` stored as the account's provider_user_id. Posts are not
retried: a retried POST could publish the same text twice.
"""

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
from src.aftermeet.services.social.errors import SocialAPIError

logger = structlog.get_logger(__name__)

AUTHORIZE_URL = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
UGC_POSTS_URL = "https://api.linkedin.com/v2/ugcPosts"

LINKEDIN_SCOPES = ["openid", "profile", "email", "w_member_social"]


def build_ugc_post(author_id: str, text: str) -> dict:
    """UGC post body sharing plain text with the member's connections."""
    return {
        "author": f"urn:li:person:{author_id}",
        "lifecycleState": "PUBLISHED",
        "specificContent": {
            "com.linkedin.ugc.ShareContent": {
                "shareCommentary": {"text": text},
                "shareMediaCategory": "NONE",
            },
        },
        "visibility": {
            "com.linkedin.ugc.MemberNetworkVisibility": "CONNECTIONS",
        },
    }


class LinkedInClient:
    """LinkedIn OAuth (single account per user) and post publishing.

    Args:
        client_id: LinkedIn app client id.
        client_secret: LinkedIn app client secret.
        redirect_uri: Callback URL registered with LinkedIn.
    """

    platform = "linkedin"

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    # ── OAuth ────────────────────────────────────────────────────────────

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "state": state,
            "scope": " ".join(LINKEDIN_SCOPES),
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    @oauth_retry
    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access token.

        Raises:
            OAuthError: If LinkedIn rejects the code.
        """
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "redirect_uri": self._redirect_uri,
                },
            )
        raise_for_oauth_status("linkedin", response)
        return parse_token_response(response.json())

    @oauth_retry
    async def get_user_info(self, access_token: str) -> dict:
        """Return the OpenID profile (``sub``, ``email``, ``name``)."""
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        raise_for_oauth_status("linkedin", response)
        return response.json()

    # ── Publishing ───────────────────────────────────────────────────────

    async def publish(self, author_id: str, text: str, access_token: str) -> str:
        """Publish a text post as the member.

        Args:
            author_id: Member id (OpenID ``sub``).
            text: Post text.
            access_token: Member's OAuth access token.

        Returns:
            The new post's id.

        Raises:
            SocialAPIError: On a non-success response.
            httpx.HTTPError: On network failure.
        """
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                UGC_POSTS_URL,
                json=build_ugc_post(author_id, text),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "X-Restli-Protocol-Version": "2.0.0",
                    "Content-Type": "application/json",
                },
            )

        if not response.is_success:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise SocialAPIError(self.platform, response.status_code, message)

        post_id = response.headers.get("x-restli-id")
        if response.content:
            post_id = response.json().get("id") or post_id
        logger.info("linkedin.post_published", post_id=post_id)
        return post_id or ""
