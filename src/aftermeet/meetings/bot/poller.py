"""TranscriptPoller -- turns finished Recall.ai recordings into generated content.

Each run selects scheduled meetings with a bot whose end time has passed and
processes them concurrently (bounded by a semaphore). Per meeting:

1. Take a processing lease; meetings leased by an overlapping run are skipped.
2. Read the bot state (RecallClient retries transient failures with backoff).
3. ``media_ready`` with a transcript URL: download and join the transcript,
   generate content, then move scheduled -> completed with the transcript.
4. ``done`` / ``error`` / ``fatal``: move scheduled -> error.
5. Anything else: still in progress; release the lease and leave it alone.

Failures are isolated per meeting and recorded as status=error with an
error_message; they are never raised out of the run.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

import httpx
import structlog

from src.aftermeet.core.monitoring import meetings_processed_total
from src.aftermeet.meetings.bot.recall_client import (
    STATE_MEDIA_READY,
    TERMINAL_FAILURE_STATES,
    RecallAPIError,
    join_transcript,
)
from src.aftermeet.meetings.schemas import JobRunSummary, Meeting, MeetingStatus

if TYPE_CHECKING:
    from src.aftermeet.content.generator import ContentGenerator
    from src.aftermeet.meetings.bot.recall_client import RecallClient
    from src.aftermeet.meetings.repository import MeetingRepository

logger = structlog.get_logger(__name__)


class PollOutcome(str, Enum):
    """What one poll did to one meeting."""

    COMPLETED = "completed"
    ERROR = "error"
    IN_PROGRESS = "in_progress"
    SKIPPED = "skipped"


class TranscriptPoller:
    """Polls bot state for finished meetings and drives them to a terminal status.

    Args:
        recall_client: RecallClient (carries the timeout and retry policy).
        repository: MeetingRepository for selection, leases, and transitions.
        content_generator: ContentGenerator invoked on a ready transcript.
        concurrency: Maximum meetings processed at once.
        lease_seconds: Processing lease duration.
    """

    def __init__(
        self,
        recall_client: RecallClient,
        repository: MeetingRepository,
        content_generator: ContentGenerator,
        concurrency: int = 4,
        lease_seconds: int = 600,
    ) -> None:
        self._recall = recall_client
        self._repository = repository
        self._generator = content_generator
        self._concurrency = concurrency
        self._lease_seconds = lease_seconds

    async def poll(self, now: datetime | None = None) -> JobRunSummary:
        """Process every meeting awaiting a transcript.

        Returns:
            JobRunSummary: succeeded = completed, failed = error,
            skipped = still in progress or leased elsewhere.
        """
        now = now or datetime.now(timezone.utc)
        meetings = await self._repository.list_awaiting_transcript(now)
        summary = JobRunSummary(job="poll-transcripts", checked=len(meetings))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(meeting: Meeting) -> PollOutcome:
            async with semaphore:
                return await self.process_meeting(meeting, now)

        outcomes = await asyncio.gather(
            *(_bounded(m) for m in meetings), return_exceptions=True
        )
        for meeting, outcome in zip(meetings, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "poller.meeting_crashed",
                    meeting_id=str(meeting.id),
                    error=str(outcome),
                    exc_info=outcome,
                )
                summary.failed += 1
            elif outcome == PollOutcome.COMPLETED:
                summary.succeeded += 1
            elif outcome == PollOutcome.ERROR:
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info("poller.run_complete", **summary.model_dump())
        return summary

    async def process_meeting(self, meeting: Meeting, now: datetime) -> PollOutcome:
        """Poll one meeting's bot and apply the resulting transition."""
        if not meeting.recall_bot_id:
            return PollOutcome.SKIPPED

        claimed = await self._repository.claim_for_processing(
            meeting.id, now, self._lease_seconds
        )
        if not claimed:
            logger.info("poller.meeting_leased_elsewhere", meeting_id=str(meeting.id))
            return PollOutcome.SKIPPED

        outcome = PollOutcome.ERROR
        try:
            outcome = await self._process_claimed(meeting)
        except Exception as exc:
            logger.warning(
                "poller.meeting_failed",
                meeting_id=str(meeting.id),
                exc_info=True,
            )
            await self._fail(meeting, str(exc) or exc.__class__.__name__)
        finally:
            if outcome == PollOutcome.IN_PROGRESS:
                await self._repository.release_lease(meeting.id)

        meetings_processed_total.labels(outcome=outcome.value).inc()
        return outcome

    async def _process_claimed(self, meeting: Meeting) -> PollOutcome:
        bot_id = meeting.recall_bot_id or ""
        try:
            bot = await self._recall.get_bot(bot_id)
        except (RecallAPIError, httpx.HTTPError) as exc:
            return await self._fail(meeting, f"Failed to poll bot status: {exc}")

        state = bot.get("state")
        transcript_url = bot.get("transcript_url")

        if state in TERMINAL_FAILURE_STATES:
            return await self._fail(
                meeting, f"Bot finished with state '{state}' without a transcript"
            )

        if state != STATE_MEDIA_READY or not transcript_url:
            logger.debug(
                "poller.bot_in_progress",
                meeting_id=str(meeting.id),
                bot_id=bot_id,
                state=state,
            )
            return PollOutcome.IN_PROGRESS

        try:
            segments = await self._recall.fetch_transcript(transcript_url)
        except (RecallAPIError, httpx.HTTPError) as exc:
            return await self._fail(meeting, f"Failed to fetch transcript: {exc}")

        transcript = join_transcript(segments)
        if not transcript:
            return await self._fail(meeting, "Transcript is empty")

        result = await self._generator.generate(meeting.user_id, meeting.id, transcript)
        if result.persisted_count == 0:
            return await self._fail(
                meeting,
                "Content generation failed: " + "; ".join(result.failures),
            )

        completed = await self._repository.transition(
            meeting.id,
            MeetingStatus.SCHEDULED,
            MeetingStatus.COMPLETED,
            transcript=transcript,
            error_message=None,
            lease_expires_at=None,
        )
        if completed is None:
            return PollOutcome.SKIPPED

        logger.info(
            "poller.meeting_completed",
            meeting_id=str(meeting.id),
            user_id=meeting.user_id,
            transcript_chars=len(transcript),
            contents=result.persisted_count,
        )
        return PollOutcome.COMPLETED

    async def _fail(self, meeting: Meeting, message: str) -> PollOutcome:
        logger.warning(
            "poller.meeting_error",
            meeting_id=str(meeting.id),
            user_id=meeting.user_id,
            error=message,
        )
        await self._repository.transition(
            meeting.id,
            MeetingStatus.SCHEDULED,
            MeetingStatus.ERROR,
            error_message=message,
            lease_expires_at=None,
        )
        return PollOutcome.ERROR
