"""CalendarSync -- upcoming events across a user's connected Google calendars.

For each connected Google account (in credential-store order):
refresh the access token if it expires within 60 seconds, list upcoming
events on the primary calendar, drop anything not starting strictly after
now, and map events to CalendarEvent sorted by start time.

A failure on one account (refresh or API call) yields an entry for that
account with no events and an ``error`` message; other accounts are
unaffected.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timezone
from typing import TYPE_CHECKING

import structlog

from src.aftermeet.accounts.schemas import AccountProvider, ConnectedAccount
from src.aftermeet.meetings.schemas import AccountEvents, Attendee, CalendarEvent

if TYPE_CHECKING:
    from src.aftermeet.accounts.repository import AccountRepository
    from src.aftermeet.services.google.calendar import GoogleCalendarClient
    from src.aftermeet.services.google.oauth import GoogleOAuthClient

logger = structlog.get_logger(__name__)

REFRESH_SKEW_SECONDS = 60


# ── Event Mapping ────────────────────────────────────────────────────────────


def _parse_event_time(value: dict | None) -> datetime | None:
    """Parse a Google ``start``/``end`` object (dateTime or all-day date)."""
    if not value:
        return None
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    elif value.get("date"):
        parsed = datetime.combine(date.fromisoformat(value["date"]), time.min)
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def map_event(raw: dict) -> CalendarEvent | None:
    """Map a Google Calendar event to CalendarEvent; None if it has no start."""
    start_time = _parse_event_time(raw.get("start"))
    if start_time is None or not raw.get("id"):
        return None
    return CalendarEvent(
        id=raw["id"],
        title=raw.get("summary") or "No Title",
        start_time=start_time,
        end_time=_parse_event_time(raw.get("end")),
        attendees=[
            Attendee(email=a["email"], response_status=a.get("responseStatus"))
            for a in raw.get("attendees", [])
            if a.get("email")
        ],
        description=raw.get("description") or "",
        location=raw.get("location") or "",
    )


def upcoming_events(raw_events: list[dict], now: datetime) -> list[CalendarEvent]:
    """Map, keep events starting strictly after ``now``, sort by start time."""
    events = [e for e in (map_event(r) for r in raw_events) if e is not None]
    events = [e for e in events if e.start_time > now]
    return sorted(events, key=lambda e: e.start_time)


# ── CalendarSync ─────────────────────────────────────────────────────────────


class CalendarSync:
    """Fetches upcoming events for every Google account a user has connected.

    Args:
        account_repository: Credential store for connected accounts.
        oauth_client: GoogleOAuthClient used to refresh expiring tokens.
        calendar_client: GoogleCalendarClient for the Calendar API.
        max_results: Page size bound per account.
    """

    def __init__(
        self,
        account_repository: AccountRepository,
        oauth_client: GoogleOAuthClient,
        calendar_client: GoogleCalendarClient,
        max_results: int = 250,
    ) -> None:
        self._accounts = account_repository
        self._oauth = oauth_client
        self._calendar = calendar_client
        self._max_results = max_results

    async def sync(self, user_id: str, now: datetime | None = None) -> list[AccountEvents]:
        """Return one AccountEvents entry per connected Google account.

        Args:
            user_id: Caller whose accounts are synced.
            now: Reference time (defaults to current UTC time).

        Returns:
            Entries in credential-store order; events ascending by start time.
        """
        now = now or datetime.now(timezone.utc)
        accounts = await self._accounts.list_accounts(user_id, AccountProvider.GOOGLE)
        results = await asyncio.gather(
            *(self._sync_account(account, now) for account in accounts)
        )
        logger.info(
            "calendar_sync.complete",
            user_id=user_id,
            accounts=len(results),
            failed=sum(1 for r in results if r.error),
            events=sum(len(r.events) for r in results),
        )
        return list(results)

    async def _sync_account(self, account: ConnectedAccount, now: datetime) -> AccountEvents:
        entry = AccountEvents(account_id=account.id, account_email=account.display_email)
        try:
            account = await self._ensure_fresh_token(account, now)
            raw_events = await self._calendar.list_upcoming_events(
                account.access_token, now, self._max_results
            )
        except Exception as exc:
            logger.warning(
                "calendar_sync.account_failed",
                account_id=str(account.id),
                user_id=account.user_id,
                error=str(exc),
                exc_info=True,
            )
            entry.error = str(exc) or exc.__class__.__name__
            return entry

        entry.events = upcoming_events(raw_events, now)
        return entry

    async def _ensure_fresh_token(
        self, account: ConnectedAccount, now: datetime
    ) -> ConnectedAccount:
        """Refresh and persist the access token if it is about to expire."""
        if not account.is_expired(now, skew_seconds=REFRESH_SKEW_SECONDS):
            return account
        if not account.refresh_token:
            raise RuntimeError("Access token expired and no refresh token is stored; reconnect the account")

        grant = await self._oauth.refresh_access_token(account.refresh_token)
        updated = await self._accounts.update_tokens(account.id, grant)
        logger.info(
            "calendar_sync.token_refreshed",
            account_id=str(account.id),
            new_refresh_token=bool(grant.refresh_token),
        )
        return updated or account.model_copy(
            update={"access_token": grant.access_token, "expires_at": grant.expires_at}
        )
