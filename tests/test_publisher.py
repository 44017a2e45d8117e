"""Tests for SocialPublisher and the LinkedIn client.

The LinkedIn client is exercised for real with ``httpx.AsyncClient.post``
patched, so credential checks can assert that no request was attempted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.aftermeet.accounts.schemas import AccountProvider
from src.aftermeet.services.social.errors import PublishError, PublishErrorKind
from src.aftermeet.services.social.linkedin import UGC_POSTS_URL, LinkedInClient
from src.aftermeet.services.social.publisher import SocialPublisher

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code, request=httpx.Request("POST", UGC_POSTS_URL), **kwargs
    )


@pytest.fixture
def linkedin():
    return LinkedInClient("client-id", "client-secret", "http://localhost/callback")


@pytest.fixture
def publisher(account_repo, linkedin):
    return SocialPublisher(account_repo, {"linkedin": linkedin})


@pytest.fixture
def connected(account_repo):
    def _connect(expires_at=NOW + timedelta(days=30)):
        return account_repo.add(
            user_id="user-1",
            provider=AccountProvider.LINKEDIN,
            provider_user_id="li-member-1",
            provider_user_email="advisor@example.com",
            access_token="li-access-token",
            expires_at=expires_at,
        )

    return _connect


# ── Credential Checks ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_expired_token_requires_reconnect_without_network_call(publisher, connected):
    connected(expires_at=NOW - timedelta(minutes=1))

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        with pytest.raises(PublishError) as exc_info:
            await publisher.publish("user-1", "linkedin", "Great meeting today!", now=NOW)

    assert exc_info.value.kind == PublishErrorKind.RECONNECT_REQUIRED
    assert "reconnect" in exc_info.value.message.lower()
    mock_post.assert_not_called()


@pytest.mark.asyncio
async def test_missing_account_is_not_connected(publisher):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        with pytest.raises(PublishError) as exc_info:
            await publisher.publish("user-1", "linkedin", "Hello", now=NOW)

    assert exc_info.value.kind == PublishErrorKind.NOT_CONNECTED
    assert exc_info.value.message == "Linkedin account not connected."
    mock_post.assert_not_called()


@pytest.mark.asyncio
async def test_other_users_account_is_not_used(publisher, account_repo):
    account_repo.add(
        user_id="user-2",
        provider=AccountProvider.LINKEDIN,
        provider_user_id="li-member-2",
        access_token="someone-elses-token",
    )

    with pytest.raises(PublishError) as exc_info:
        await publisher.publish("user-1", "linkedin", "Hello", now=NOW)

    assert exc_info.value.kind == PublishErrorKind.NOT_CONNECTED


@pytest.mark.asyncio
async def test_empty_content_is_validation_error(publisher, connected):
    connected()
    with pytest.raises(PublishError) as exc_info:
        await publisher.publish("user-1", "linkedin", "   ", now=NOW)
    assert exc_info.value.kind == PublishErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_unsupported_platform(publisher):
    with pytest.raises(PublishError) as exc_info:
        await publisher.publish("user-1", "myspace", "Hello", now=NOW)
    assert exc_info.value.kind == PublishErrorKind.UNSUPPORTED_PLATFORM


# ── Publishing ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_publish_posts_ugc_body(publisher, connected):
    connected()

    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        return_value=_response(201, headers={"x-restli-id": "urn:li:share:123"}),
    ) as mock_post:
        result = await publisher.publish("user-1", " LinkedIn ", " Great meeting! ", now=NOW)

    assert result.platform == "linkedin"
    assert result.post_id == "urn:li:share:123"
    assert mock_post.call_args.args[0] == UGC_POSTS_URL
    body = mock_post.call_args.kwargs["json"]
    assert body["author"] == "urn:li:person:li-member-1"
    share = body["specificContent"]["com.linkedin.ugc.ShareContent"]
    assert share["shareCommentary"]["text"] == "Great meeting!"
    headers = mock_post.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer li-access-token"
    assert headers["X-Restli-Protocol-Version"] == "2.0.0"


@pytest.mark.asyncio
async def test_publish_reads_post_id_from_body(publisher, connected):
    connected()

    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        return_value=_response(201, json={"id": "urn:li:ugcPost:9"}),
    ):
        result = await publisher.publish("user-1", "linkedin", "Hello", now=NOW)

    assert result.post_id == "urn:li:ugcPost:9"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,kind,retryable",
    [
        (401, PublishErrorKind.UNAUTHORIZED, False),
        (403, PublishErrorKind.FORBIDDEN, False),
        (429, PublishErrorKind.RATE_LIMITED, True),
        (422, PublishErrorKind.OTHER, False),
        (500, PublishErrorKind.OTHER, True),
    ],
)
async def test_provider_errors_are_classified(
    publisher, connected, status_code, kind, retryable
):
    connected()

    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        return_value=_response(status_code, json={"message": "Duplicate post detected"}),
    ):
        with pytest.raises(PublishError) as exc_info:
            await publisher.publish("user-1", "linkedin", "Hello", now=NOW)

    assert exc_info.value.kind == kind
    assert exc_info.value.retryable is retryable
    if kind == PublishErrorKind.OTHER:
        assert "Duplicate post detected" in exc_info.value.message


@pytest.mark.asyncio
async def test_network_failure_is_retryable(publisher, connected):
    connected()

    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        side_effect=httpx.ConnectError("connection reset"),
    ) as mock_post:
        with pytest.raises(PublishError) as exc_info:
            await publisher.publish("user-1", "linkedin", "Hello", now=NOW)

    assert exc_info.value.kind == PublishErrorKind.OTHER
    assert exc_info.value.retryable is True
    assert mock_post.call_count == 1


def test_publish_error_to_dict():
    error = PublishError(PublishErrorKind.RATE_LIMITED, "Slow down", retryable=True)
    assert error.to_dict() == {"error": "Slow down", "kind": "rate_limited", "retryable": True}


def test_linkedin_authorization_url(linkedin):
    url = linkedin.authorization_url("signed-state")
    assert url.startswith("https://www.linkedin.com/oauth/v2/authorization?")
    assert "state=signed-state" in url
    assert "w_member_social" in url
