"""SocialPublisher -- posts previously generated content on the user's behalf.

Looks up the caller's stored credential for the target platform and refuses
to call the platform at all when the account is missing or its token has
expired. Provider errors are classified so the caller can tell the user
whether to reconnect, fix permissions, or retry later.

Publishing is not tracked: calling publish twice posts twice.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog
from pydantic import BaseModel

from src.aftermeet.accounts.schemas import AccountProvider
from src.aftermeet.services.social.errors import (
    PublishError,
    PublishErrorKind,
    SocialAPIError,
)

if TYPE_CHECKING:
    from src.aftermeet.accounts.repository import AccountRepository

logger = structlog.get_logger(__name__)

PLATFORM_PROVIDERS: dict[str, AccountProvider] = {
    "linkedin": AccountProvider.LINKEDIN,
}


class SocialClient(Protocol):
    platform: str

    async def publish(self, author_id: str, text: str, access_token: str) -> str: ...


class PublishResult(BaseModel):
    platform: str
    post_id: str


def classify_api_error(exc: SocialAPIError) -> PublishError:
    """Map a provider HTTP error to a user-facing PublishError."""
    name = exc.platform.capitalize()
    if exc.status_code == 401:
        return PublishError(
            PublishErrorKind.UNAUTHORIZED,
            f"{name} token is invalid or revoked. Please reconnect your account.",
        )
    if exc.status_code == 403:
        return PublishError(
            PublishErrorKind.FORBIDDEN,
            f"Insufficient permissions to post on {name}. Reconnect and grant posting access.",
        )
    if exc.status_code == 429:
        return PublishError(
            PublishErrorKind.RATE_LIMITED,
            f"{name} rate limit reached. Please try again later.",
            retryable=True,
        )
    return PublishError(
        PublishErrorKind.OTHER,
        f"{name} rejected the post: {exc.message}",
        retryable=exc.status_code >= 500,
    )


class SocialPublisher:
    """Publishes text to a connected social account.

    Args:
        account_repository: Credential store.
        clients: Platform clients keyed by platform name (e.g. "linkedin").
    """

    def __init__(
        self,
        account_repository: AccountRepository,
        clients: dict[str, SocialClient],
    ) -> None:
        self._accounts = account_repository
        self._clients = clients

    async def publish(
        self,
        user_id: str,
        platform: str,
        content: str,
        now: datetime | None = None,
    ) -> PublishResult:
        """Publish ``content`` to ``platform`` as the caller.

        Args:
            user_id: Caller whose stored credential is used.
            platform: Target platform name.
            content: Text to post.
            now: Reference time for the expiry check.

        Returns:
            PublishResult with the new post id.

        Raises:
            PublishError: For every failure, classified by kind.
        """
        now = now or datetime.now(timezone.utc)
        platform = platform.strip().lower()
        text = content.strip()
        if not text:
            raise PublishError(PublishErrorKind.VALIDATION, "Content cannot be empty.")

        client = self._clients.get(platform)
        provider = PLATFORM_PROVIDERS.get(platform)
        if client is None or provider is None:
            raise PublishError(
                PublishErrorKind.UNSUPPORTED_PLATFORM,
                f"Publishing to '{platform}' is not supported.",
            )

        name = platform.capitalize()
        account = await self._accounts.get_account(user_id, provider)
        if account is None:
            raise PublishError(
                PublishErrorKind.NOT_CONNECTED,
                f"{name} account not connected.",
            )
        if account.is_expired(now):
            raise PublishError(
                PublishErrorKind.RECONNECT_REQUIRED,
                f"{name} token expired. Please reconnect your account.",
            )

        try:
            post_id = await client.publish(
                account.provider_user_id, text, account.access_token
            )
        except SocialAPIError as exc:
            error = classify_api_error(exc)
            logger.warning(
                "publisher.provider_error",
                user_id=user_id,
                platform=platform,
                status_code=exc.status_code,
                kind=error.kind.value,
            )
            raise error from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "publisher.network_error",
                user_id=user_id,
                platform=platform,
                error=str(exc),
            )
            raise PublishError(
                PublishErrorKind.OTHER,
                f"Could not reach {name}. Please try again.",
                retryable=True,
            ) from exc

        logger.info(
            "publisher.published",
            user_id=user_id,
            platform=platform,
            post_id=post_id,
        )
        return PublishResult(platform=platform, post_id=post_id)
