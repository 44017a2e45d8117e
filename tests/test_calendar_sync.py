"""Tests for CalendarSync and Google event mapping."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.aftermeet.accounts.schemas import AccountProvider, TokenGrant
from src.aftermeet.meetings.calendar.sync import CalendarSync, map_event, upcoming_events
from src.aftermeet.services.google.oauth import GoogleOAuthClient
from src.aftermeet.services.oauth import OAuthError

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _raw_event(event_id: str, start: datetime, **extra) -> dict:
    return {
        "id": event_id,
        "summary": f"Event {event_id}",
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": (start + timedelta(minutes=30)).isoformat()},
        **extra,
    }


def _add_google_account(account_repo, email: str, expires_at: datetime, **fields):
    return account_repo.add(
        user_id="user-1",
        provider=AccountProvider.GOOGLE,
        provider_user_id=f"g-{email}",
        provider_user_email=email,
        access_token=f"token-{email}",
        refresh_token=f"refresh-{email}",
        expires_at=expires_at,
        **fields,
    )


@pytest.fixture
def oauth():
    client = AsyncMock()
    client.refresh_access_token = AsyncMock(
        return_value=TokenGrant(access_token="fresh-token", expires_at=NOW + timedelta(hours=1))
    )
    return client


@pytest.fixture
def calendar():
    client = AsyncMock()
    client.list_upcoming_events = AsyncMock(return_value=[])
    return client


@pytest.fixture
def sync(account_repo, oauth, calendar):
    return CalendarSync(account_repo, oauth, calendar, max_results=50)


# ── CalendarSync ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_failing_refresh_does_not_hide_healthy_account(
    sync, account_repo, oauth, calendar
):
    _add_google_account(account_repo, "healthy@example.com", NOW + timedelta(hours=1))
    _add_google_account(account_repo, "stale@example.com", NOW - timedelta(minutes=5))
    oauth.refresh_access_token.side_effect = OAuthError("google", "invalid_grant", 400)
    calendar.list_upcoming_events.return_value = [
        _raw_event("late", NOW + timedelta(hours=3)),
        _raw_event("past", NOW - timedelta(hours=1)),
        _raw_event("soon", NOW + timedelta(minutes=20)),
    ]

    entries = await sync.sync("user-1", NOW)

    assert len(entries) == 2
    healthy, stale = entries
    assert healthy.account_email == "healthy@example.com"
    assert healthy.error is None
    assert [e.id for e in healthy.events] == ["soon", "late"]
    assert stale.account_email == "stale@example.com"
    assert stale.events == []
    assert "invalid_grant" in stale.error
    calendar.list_upcoming_events.assert_awaited_once_with(
        "token-healthy@example.com", NOW, 50
    )


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_and_persisted(sync, account_repo, oauth, calendar):
    account = _add_google_account(account_repo, "a@example.com", NOW + timedelta(seconds=30))

    entries = await sync.sync("user-1", NOW)

    assert entries[0].error is None
    oauth.refresh_access_token.assert_awaited_once_with("refresh-a@example.com")
    calendar.list_upcoming_events.assert_awaited_once_with("fresh-token", NOW, 50)
    stored = (await account_repo.list_accounts("user-1"))[0]
    assert stored.id == account.id
    assert stored.access_token == "fresh-token"
    assert stored.refresh_token == "refresh-a@example.com"


@pytest.mark.asyncio
async def test_expired_token_without_refresh_token(sync, account_repo, oauth):
    _add_google_account(account_repo, "a@example.com", NOW - timedelta(hours=1))
    account_repo.accounts[0] = account_repo.accounts[0].model_copy(update={"refresh_token": None})

    entries = await sync.sync("user-1", NOW)

    assert entries[0].events == []
    assert "reconnect" in entries[0].error
    oauth.refresh_access_token.assert_not_called()


@pytest.mark.asyncio
async def test_calendar_api_failure_is_isolated(sync, account_repo, calendar):
    _add_google_account(account_repo, "a@example.com", NOW + timedelta(hours=1))
    _add_google_account(account_repo, "b@example.com", NOW + timedelta(hours=1))

    async def list_events(access_token, time_min, max_results):
        if access_token == "token-a@example.com":
            raise RuntimeError("Calendar API unavailable")
        return [_raw_event("evt-b", NOW + timedelta(hours=1))]

    calendar.list_upcoming_events.side_effect = list_events

    entries = await sync.sync("user-1", NOW)

    assert entries[0].error == "Calendar API unavailable"
    assert entries[0].events == []
    assert [e.id for e in entries[1].events] == ["evt-b"]


@pytest.mark.asyncio
async def test_only_google_accounts_of_the_caller_are_synced(sync, account_repo, calendar):
    _add_google_account(account_repo, "mine@example.com", NOW + timedelta(hours=1))
    account_repo.add(
        user_id="user-2",
        provider=AccountProvider.GOOGLE,
        provider_user_id="g-other",
        access_token="other-token",
    )
    account_repo.add(
        user_id="user-1",
        provider=AccountProvider.LINKEDIN,
        provider_user_id="li-1",
        access_token="li-token",
    )

    entries = await sync.sync("user-1", NOW)

    assert [e.account_email for e in entries] == ["mine@example.com"]


@pytest.mark.asyncio
async def test_no_connected_accounts(sync):
    assert await sync.sync("user-1", NOW) == []


# ── Event Mapping ───────────────────────────────────────────────────────────


def test_map_event_defaults():
    event = map_event({"id": "e1", "start": {"dateTime": "2026-03-03T10:00:00Z"}})

    assert event.title == "No Title"
    assert event.start_time == datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc)
    assert event.end_time is None
    assert event.attendees == []
    assert event.description == ""
    assert event.location == ""


def test_map_event_all_day_and_attendees():
    event = map_event(
        {
            "id": "e2",
            "summary": "Offsite",
            "start": {"date": "2026-03-04"},
            "end": {"date": "2026-03-05"},
            "location": "https://zoom.us/j/1",
            "attendees": [
                {"email": "client@example.com", "responseStatus": "accepted"},
                {"displayName": "No email"},
            ],
        }
    )

    assert event.start_time == datetime(2026, 3, 4, tzinfo=timezone.utc)
    assert event.end_time == datetime(2026, 3, 5, tzinfo=timezone.utc)
    assert [a.email for a in event.attendees] == ["client@example.com"]
    assert event.attendees[0].response_status == "accepted"
    assert event.location == "https://zoom.us/j/1"


def test_map_event_without_start_is_dropped():
    assert map_event({"id": "e3", "start": {}}) is None
    assert map_event({"start": {"dateTime": "2026-03-03T10:00:00Z"}}) is None


def test_upcoming_events_excludes_event_starting_now():
    events = upcoming_events(
        [_raw_event("now", NOW), _raw_event("next", NOW + timedelta(seconds=1))], NOW
    )
    assert [e.id for e in events] == ["next"]


# ── Google OAuth Refresh ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_google_refresh_parses_token_response():
    client = GoogleOAuthClient("client-id", "client-secret", "http://localhost/callback")
    request = httpx.Request("POST", "https://oauth2.googleapis.com/token")
    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        return_value=httpx.Response(
            200, request=request, json={"access_token": "new", "expires_in": 3600}
        ),
    ) as mock_post:
        grant = await client.refresh_access_token("stored-refresh")

    assert grant.access_token == "new"
    assert grant.refresh_token is None
    assert grant.expires_at is not None
    assert mock_post.call_args.kwargs["data"]["grant_type"] == "refresh_token"


@pytest.mark.asyncio
async def test_google_refresh_rejected_raises_oauth_error():
    client = GoogleOAuthClient("client-id", "client-secret", "http://localhost/callback")
    request = httpx.Request("POST", "https://oauth2.googleapis.com/token")
    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        return_value=httpx.Response(
            400,
            request=request,
            json={"error": "invalid_grant", "error_description": "Token has been revoked."},
        ),
    ) as mock_post:
        with pytest.raises(OAuthError) as exc_info:
            await client.refresh_access_token("revoked")

    assert exc_info.value.status_code == 400
    assert "Token has been revoked." in str(exc_info.value)
    assert mock_post.call_count == 1
