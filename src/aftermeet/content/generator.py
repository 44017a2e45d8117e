"""ContentGenerator -- follow-up email and social posts from a meeting transcript.

Runs one LLM call per automation owned by the meeting's user plus one fixed
follow-up email call, all concurrently (bounded by a semaphore). Each
successful result is upserted keyed by (meeting, automation) or
(meeting, "email"), so re-running generation replaces earlier output instead
of duplicating it. A failing call is logged and recorded in the result; it
never blocks the other calls.

Exports:
    ContentGenerator: Main content generation service.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

import structlog

from src.aftermeet.content.prompts import (
    build_email_messages,
    build_social_post_messages,
)
from src.aftermeet.content.schemas import (
    CONTENT_TYPE_EMAIL,
    Automation,
    GeneratedContent,
    GenerationResult,
)

if TYPE_CHECKING:
    from src.aftermeet.content.repository import AutomationRepository, ContentRepository
    from src.aftermeet.services.llm import LLMService

logger = structlog.get_logger(__name__)


class ContentGenerator:
    """Generates and persists AI content for finished meetings.

    Args:
        llm_service: LLMService (or compatible) exposing ``completion``.
        automation_repository: Source of the user's automations.
        content_repository: Upsert target for generated content.
        model: LiteLLM Router model group.
        max_concurrency: Upper bound on simultaneous LLM calls per meeting.
        timeout: Per-call LLM timeout in seconds (None uses the service default).
    """

    def __init__(
        self,
        llm_service: LLMService,
        automation_repository: AutomationRepository,
        content_repository: ContentRepository,
        model: str = "content",
        max_concurrency: int = 4,
        timeout: float | None = None,
    ) -> None:
        self._llm = llm_service
        self._automations = automation_repository
        self._content = content_repository
        self._model = model
        self._max_concurrency = max_concurrency
        self._timeout = timeout

    async def generate(
        self, user_id: str, meeting_id: uuid.UUID, transcript: str
    ) -> GenerationResult:
        """Generate all content for one meeting.

        Args:
            user_id: Owner of the meeting; selects which automations run.
            meeting_id: Meeting the content belongs to.
            transcript: Non-empty transcript text.

        Returns:
            GenerationResult with the persisted email, persisted social posts,
            and a message per failed call.
        """
        automations = await self._automations.list_automations(user_id)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        metadata = {"user_id": user_id, "meeting_id": str(meeting_id)}

        email_task = self._generate_email(semaphore, meeting_id, transcript, metadata)
        post_tasks = [
            self._generate_post(semaphore, meeting_id, automation, transcript, metadata)
            for automation in automations
        ]
        outcomes = await asyncio.gather(email_task, *post_tasks, return_exceptions=True)

        result = GenerationResult(meeting_id=meeting_id)
        labels = [CONTENT_TYPE_EMAIL] + [f"automation:{a.id}" for a in automations]
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "content.generation_failed",
                    meeting_id=str(meeting_id),
                    target=label,
                    error=str(outcome),
                    exc_info=outcome,
                )
                result.failures.append(f"{label}: {outcome}")
            elif label == CONTENT_TYPE_EMAIL:
                result.email = outcome
            else:
                result.social_posts.append(outcome)

        logger.info(
            "content.generated",
            meeting_id=str(meeting_id),
            user_id=user_id,
            email=result.email is not None,
            social_posts=len(result.social_posts),
            failures=len(result.failures),
        )
        return result

    async def _complete(self, messages: list[dict], metadata: dict) -> str:
        response = await self._llm.completion(
            messages=messages,
            model=self._model,
            timeout=self._timeout,
            metadata=metadata,
        )
        content = (response.get("content") or "").strip()
        if not content:
            raise ValueError("LLM returned empty content")
        return content

    async def _generate_email(
        self,
        semaphore: asyncio.Semaphore,
        meeting_id: uuid.UUID,
        transcript: str,
        metadata: dict,
    ) -> GeneratedContent:
        async with semaphore:
            text = await self._complete(
                build_email_messages(transcript),
                {**metadata, "content_type": CONTENT_TYPE_EMAIL},
            )
        return await self._content.upsert_content(
            meeting_id, CONTENT_TYPE_EMAIL, text
        )

    async def _generate_post(
        self,
        semaphore: asyncio.Semaphore,
        meeting_id: uuid.UUID,
        automation: Automation,
        transcript: str,
        metadata: dict,
    ) -> GeneratedContent:
        async with semaphore:
            text = await self._complete(
                build_social_post_messages(
                    automation.platform, automation.prompt, transcript
                ),
                {
                    **metadata,
                    "content_type": automation.content_type,
                    "automation_id": str(automation.id),
                },
            )
        return await self._content.upsert_content(
            meeting_id,
            automation.content_type,
            text,
            automation_id=automation.id,
        )
