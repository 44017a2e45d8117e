"""BotDispatcher -- schedules Recall.ai recording bots for opted-in meetings.

A meeting with transcription enabled and a detected meeting URL gets one
bot. On success the bot id is stored and the meeting moves
pending -> scheduled; on failure it moves pending -> error with the reason
and no bot id. Failures are reported, not retried: the periodic dispatch
job only re-scans meetings that are still pending.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import httpx
import structlog

from src.aftermeet.core.monitoring import bots_dispatched_total
from src.aftermeet.meetings.bot.recall_client import RecallAPIError
from src.aftermeet.meetings.schemas import (
    JobRunSummary,
    Meeting,
    MeetingPlatform,
    MeetingStatus,
)

if TYPE_CHECKING:
    from src.aftermeet.meetings.bot.recall_client import RecallClient
    from src.aftermeet.meetings.repository import MeetingRepository

logger = structlog.get_logger(__name__)

# Recall.ai platform-specific block name per platform
PLATFORM_BLOCKS: dict[MeetingPlatform, str] = {
    MeetingPlatform.ZOOM: "zoom",
    MeetingPlatform.GOOGLE_MEET: "google_meet",
    MeetingPlatform.TEAMS: "teams",
}

NO_MEETING_URL_ERROR = "No meeting URL found"


def build_bot_config(meeting: Meeting, bot_name: str) -> dict:
    """Recall.ai bot creation payload for a meeting.

    Args:
        meeting: Meeting with a meeting_url.
        bot_name: Display name prefix for the bot.

    Returns:
        Bot configuration with calendar_invite metadata and the
        platform-specific block.
    """
    config: dict = {
        "bot_name": f"{bot_name} - {meeting.title or 'Untitled'}",
        "meeting_url": meeting.meeting_url,
        "join_at": meeting.start_time.isoformat(),
        "calendar_invite": {
            "meeting_url": meeting.meeting_url,
            "start_time": meeting.start_time.isoformat(),
            "end_time": meeting.end_time.isoformat(),
        },
        "metadata": {
            "meeting_id": str(meeting.id),
            "user_id": meeting.user_id,
        },
    }
    block = PLATFORM_BLOCKS.get(meeting.platform)
    if block is not None:
        config[block] = {"meeting_url": meeting.meeting_url}
    return config


class BotDispatcher:
    """Creates Recall.ai bots and records the outcome on the meeting.

    Args:
        recall_client: RecallClient for the Recall.ai REST API.
        repository: MeetingRepository for conditional status updates.
        bot_name: Bot display name prefix.
        window_minutes: How far ahead of start the dispatch job looks.
    """

    def __init__(
        self,
        recall_client: RecallClient,
        repository: MeetingRepository,
        bot_name: str = "Meeting Bot",
        window_minutes: int = 15,
    ) -> None:
        self._recall = recall_client
        self._repository = repository
        self._bot_name = bot_name
        self._window = timedelta(minutes=window_minutes)

    async def dispatch(self, meeting: Meeting) -> Meeting:
        """Schedule a bot for one pending, opted-in meeting.

        Args:
            meeting: Meeting in ``pending`` status with transcription enabled.

        Returns:
            The meeting after the attempt (``scheduled`` or ``error``), or
            unchanged if it was not eligible.
        """
        if (
            meeting.status != MeetingStatus.PENDING
            or not meeting.is_transcription_enabled
            or meeting.recall_bot_id
        ):
            logger.debug(
                "dispatch.not_eligible",
                meeting_id=str(meeting.id),
                status=meeting.status.value,
            )
            return meeting

        if not meeting.meeting_url:
            return await self._fail(meeting, NO_MEETING_URL_ERROR)

        try:
            response = await self._recall.create_bot(
                build_bot_config(meeting, self._bot_name)
            )
        except (RecallAPIError, httpx.HTTPError) as exc:
            return await self._fail(meeting, f"Failed to create recording bot: {exc}")

        bot_id = response.get("id")
        if not bot_id:
            return await self._fail(meeting, "Recall.ai response did not include a bot id")

        updated = await self._repository.assign_bot(meeting.id, bot_id)
        if updated is None:
            # Another dispatch won the race; this bot would be a duplicate.
            logger.warning(
                "dispatch.bot_already_assigned",
                meeting_id=str(meeting.id),
                bot_id=bot_id,
            )
            await self.cancel_bot(bot_id)
            current = await self._repository.get_meeting(meeting.user_id, str(meeting.id))
            return current or meeting

        bots_dispatched_total.labels(
            platform=meeting.platform.value, outcome="scheduled"
        ).inc()
        logger.info(
            "dispatch.bot_scheduled",
            meeting_id=str(meeting.id),
            user_id=meeting.user_id,
            bot_id=bot_id,
            platform=meeting.platform.value,
        )
        return updated

    async def dispatch_due(self, now: datetime | None = None) -> JobRunSummary:
        """Dispatch bots for pending meetings starting within the window.

        Each meeting is handled independently; one failure never stops the run.
        """
        now = now or datetime.now(timezone.utc)
        meetings = await self._repository.list_due_for_dispatch(now, now + self._window)
        summary = JobRunSummary(job="dispatch-bots", checked=len(meetings))

        for meeting in meetings:
            try:
                result = await self.dispatch(meeting)
            except Exception:
                logger.exception("dispatch.meeting_failed", meeting_id=str(meeting.id))
                summary.failed += 1
                continue
            if result.status == MeetingStatus.SCHEDULED:
                summary.succeeded += 1
            elif result.status == MeetingStatus.ERROR:
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info("dispatch.run_complete", **summary.model_dump())
        return summary

    async def cancel_bot(self, bot_id: str) -> bool:
        """Ask Recall.ai to remove a bot. Best effort: failures are logged only."""
        try:
            await self._recall.delete_bot(bot_id)
        except (RecallAPIError, httpx.HTTPError) as exc:
            logger.warning("dispatch.bot_cancel_failed", bot_id=bot_id, error=str(exc))
            return False
        return True

    async def _fail(self, meeting: Meeting, message: str) -> Meeting:
        bots_dispatched_total.labels(
            platform=meeting.platform.value, outcome="error"
        ).inc()
        logger.warning(
            "dispatch.failed",
            meeting_id=str(meeting.id),
            user_id=meeting.user_id,
            error=message,
        )
        updated = await self._repository.transition(
            meeting.id,
            MeetingStatus.PENDING,
            MeetingStatus.ERROR,
            error_message=message,
        )
        return updated or meeting
