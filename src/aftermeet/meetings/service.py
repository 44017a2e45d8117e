"""MeetingService -- the user's per-event recording opt-in.

Turning transcription on upserts the meeting (keyed by user + calendar
event) as pending and hands it straight to the BotDispatcher, which either
schedules a bot or records why it could not. Turning it off cancels the
meeting and asks Recall.ai to drop any bot already scheduled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.aftermeet.meetings.links import extract_meeting_link
from src.aftermeet.meetings.schemas import (
    CalendarEvent,
    InvalidTransitionError,
    Meeting,
    MeetingStatus,
    MeetingUpsert,
)

if TYPE_CHECKING:
    from src.aftermeet.meetings.bot.dispatcher import BotDispatcher
    from src.aftermeet.meetings.repository import MeetingRepository

logger = structlog.get_logger(__name__)


class MeetingService:
    """Applies transcription toggles to meeting records.

    Args:
        repository: MeetingRepository.
        dispatcher: BotDispatcher, or None when Recall.ai is not configured
            (meetings then stay pending for the dispatch job).
    """

    def __init__(
        self,
        repository: MeetingRepository,
        dispatcher: BotDispatcher | None = None,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher

    async def set_transcription(
        self, user_id: str, event: CalendarEvent, enabled: bool
    ) -> Meeting:
        """Enable or disable bot recording for a calendar event.

        Args:
            user_id: Caller who owns the calendar event.
            event: Event as returned by calendar sync.
            enabled: Desired opt-in state.

        Returns:
            The meeting after the toggle.

        Raises:
            InvalidTransitionError: If the meeting already reached a terminal status.
        """
        existing = await self._repository.get_meeting_by_event_id(user_id, event.id)

        if existing is not None and existing.status.is_terminal:
            target = MeetingStatus.PENDING if enabled else MeetingStatus.CANCELLED
            raise InvalidTransitionError(existing.status, target)

        if not enabled:
            return await self._disable(user_id, event, existing)

        if existing is not None and existing.status == MeetingStatus.SCHEDULED:
            return existing

        meeting_url, platform = extract_meeting_link(event.location, event.description)
        meeting = await self._repository.upsert_meeting(
            user_id,
            MeetingUpsert(
                gcal_event_id=event.id,
                title=event.title,
                start_time=event.start_time,
                end_time=event.end_time or event.start_time,
                meeting_url=meeting_url,
                platform=platform,
                is_transcription_enabled=True,
                status=MeetingStatus.PENDING,
            ),
        )
        if meeting.status != MeetingStatus.PENDING:
            # Moved on concurrently; the stored meeting stands.
            if meeting.status.is_terminal:
                raise InvalidTransitionError(meeting.status, MeetingStatus.PENDING)
            return meeting

        logger.info(
            "meetings.transcription_enabled",
            meeting_id=str(meeting.id),
            user_id=user_id,
            platform=platform.value,
            has_url=meeting_url is not None,
        )

        if self._dispatcher is None:
            logger.warning("meetings.dispatcher_unavailable", meeting_id=str(meeting.id))
            return meeting
        return await self._dispatcher.dispatch(meeting)

    async def _disable(
        self, user_id: str, event: CalendarEvent, existing: Meeting | None
    ) -> Meeting:
        if existing is None:
            meeting_url, platform = extract_meeting_link(event.location, event.description)
            recorded = await self._repository.upsert_meeting(
                user_id,
                MeetingUpsert(
                    gcal_event_id=event.id,
                    title=event.title,
                    start_time=event.start_time,
                    end_time=event.end_time or event.start_time,
                    meeting_url=meeting_url,
                    platform=platform,
                    is_transcription_enabled=False,
                    status=MeetingStatus.CANCELLED,
                ),
            )
            if recorded.status == MeetingStatus.CANCELLED:
                return recorded
            # Scheduled concurrently by an enable; cancel what is stored.
            if recorded.status.is_terminal:
                raise InvalidTransitionError(recorded.status, MeetingStatus.CANCELLED)
            existing = recorded

        cancelled = await self._repository.transition(
            existing.id,
            existing.status,
            MeetingStatus.CANCELLED,
            is_transcription_enabled=False,
        )
        if cancelled is None:
            current = await self._repository.get_meeting(user_id, str(existing.id))
            raise InvalidTransitionError(
                current.status if current else existing.status,
                MeetingStatus.CANCELLED,
            )

        if existing.recall_bot_id and self._dispatcher is not None:
            await self._dispatcher.cancel_bot(existing.recall_bot_id)

        logger.info(
            "meetings.transcription_disabled",
            meeting_id=str(existing.id),
            user_id=user_id,
            had_bot=bool(existing.recall_bot_id),
        )
        return cancelled
