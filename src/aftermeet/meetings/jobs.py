"""Pipeline construction and the periodic runner for the lifecycle jobs.

PeriodicJob is used by the FastAPI lifespan when BACKGROUND_JOBS_ENABLED is
set. The cron endpoints and ``scripts/run_jobs.py`` run the same job
callables once; the conditional status updates and processing lease make
overlapping runs safe.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from src.aftermeet.config import Settings
from src.aftermeet.content.generator import ContentGenerator
from src.aftermeet.content.repository import AutomationRepository, ContentRepository
from src.aftermeet.core.database import get_session
from src.aftermeet.meetings.bot.dispatcher import BotDispatcher
from src.aftermeet.meetings.bot.poller import TranscriptPoller
from src.aftermeet.meetings.bot.recall_client import RecallClient
from src.aftermeet.meetings.repository import MeetingRepository
from src.aftermeet.meetings.schemas import JobRunSummary
from src.aftermeet.services.llm import get_llm_service

logger = structlog.get_logger(__name__)


@dataclass
class Pipeline:
    """Repositories and lifecycle components shared by the API and job runners.

    ``dispatcher`` and ``poller`` are None when RECALL_AI_API_KEY is unset.
    """

    meeting_repository: MeetingRepository
    automation_repository: AutomationRepository
    content_repository: ContentRepository
    content_generator: ContentGenerator
    dispatcher: BotDispatcher | None = None
    poller: TranscriptPoller | None = None


def build_pipeline(settings: Settings) -> Pipeline:
    """Construct the meeting lifecycle components from settings."""
    meeting_repo = MeetingRepository(session_factory=get_session)
    automation_repo = AutomationRepository(session_factory=get_session)
    content_repo = ContentRepository(session_factory=get_session)
    generator = ContentGenerator(
        llm_service=get_llm_service(),
        automation_repository=automation_repo,
        content_repository=content_repo,
        model=settings.LLM_MODEL_GROUP,
        max_concurrency=settings.GENERATION_CONCURRENCY,
        timeout=settings.LLM_TIMEOUT,
    )
    pipeline = Pipeline(
        meeting_repository=meeting_repo,
        automation_repository=automation_repo,
        content_repository=content_repo,
        content_generator=generator,
    )

    if not settings.RECALL_AI_API_KEY:
        logger.warning("jobs.recall_not_configured")
        return pipeline

    recall_client = RecallClient(
        api_key=settings.RECALL_AI_API_KEY,
        region=settings.RECALL_AI_REGION,
        timeout=settings.RECALL_TIMEOUT,
        max_attempts=settings.RECALL_MAX_ATTEMPTS,
        backoff_base=settings.RECALL_BACKOFF_BASE_SECONDS,
    )
    pipeline.dispatcher = BotDispatcher(
        recall_client=recall_client,
        repository=meeting_repo,
        bot_name=settings.MEETING_BOT_NAME,
        window_minutes=settings.DISPATCH_WINDOW_MINUTES,
    )
    pipeline.poller = TranscriptPoller(
        recall_client=recall_client,
        repository=meeting_repo,
        content_generator=generator,
        concurrency=settings.POLL_CONCURRENCY,
        lease_seconds=settings.PROCESSING_LEASE_SECONDS,
    )
    return pipeline


class PeriodicJob:
    """Runs ``job`` every ``interval_seconds`` until stopped.

    Args:
        name: Job name used in log events.
        job: Coroutine function performing one pass.
        interval_seconds: Sleep between passes.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[JobRunSummary]],
        interval_seconds: float,
    ) -> None:
        self.name = name
        self._job = job
        self._interval = interval_seconds
        self._running = False

    async def run_once(self) -> JobRunSummary | None:
        """Run a single pass, logging (not raising) any failure."""
        try:
            summary = await self._job()
        except Exception:
            logger.exception("jobs.run_failed", job=self.name)
            return None
        logger.info("jobs.run_complete", **summary.model_dump())
        return summary

    async def run_poll_loop(self) -> None:
        """Async loop that runs the job every interval until ``stop()``."""
        self._running = True
        logger.info("jobs.loop_started", job=self.name, interval_seconds=self._interval)

        while self._running:
            await self.run_once()
            await asyncio.sleep(self._interval)

    def stop(self) -> None:
        """Signal the poll loop to stop."""
        self._running = False
