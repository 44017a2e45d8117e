"""Google Calendar API v3 client using a user's own OAuth access token.

The googleapiclient library is synchronous; calls are wrapped in
asyncio.to_thread so calendar sync does not block the event loop.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

logger = structlog.get_logger(__name__)


class GoogleCalendarClient:
    """Reads upcoming events from a user's primary calendar."""

    def _build_service(self, access_token: str) -> Any:
        credentials = Credentials(token=access_token)
        return build("calendar", "v3", credentials=credentials, cache_discovery=False)

    def _list_events_sync(
        self, access_token: str, time_min: datetime, max_results: int
    ) -> list[dict]:
        service = self._build_service(access_token)
        events_result = (
            service.events()
            .list(
                calendarId="primary",
                timeMin=time_min.isoformat(),
                maxResults=max_results,
                singleEvents=True,
                orderBy="startTime",
            )
            .execute()
        )
        return events_result.get("items", [])

    async def list_upcoming_events(
        self, access_token: str, time_min: datetime, max_results: int = 250
    ) -> list[dict]:
        """Fetch events on the primary calendar starting from ``time_min``.

        Args:
            access_token: Valid Google OAuth access token.
            time_min: Lower time bound (timezone-aware).
            max_results: Page size bound.

        Returns:
            Raw Google Calendar event dicts ordered by start time.

        Raises:
            googleapiclient.errors.HttpError: On API failure.
        """
        events = await asyncio.to_thread(
            self._list_events_sync, access_token, time_min, max_results
        )
        logger.debug("google.calendar_events_listed", count=len(events))
        return events
