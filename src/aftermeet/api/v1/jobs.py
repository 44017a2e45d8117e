"""Cron entry points for the bot dispatch and transcript poll jobs.

Protected by ``Authorization: Bearer <CRON_SECRET>``; each request runs one
pass of the job and returns its run summary.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.aftermeet.api.deps import require_cron_secret
from src.aftermeet.meetings.schemas import JobRunSummary

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    dependencies=[Depends(require_cron_secret)],
)


def _get_bot_dispatcher(request: Request) -> Any:
    """Retrieve BotDispatcher from app.state, 503 if not available."""
    dispatcher = getattr(request.app.state, "bot_dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot dispatcher not initialized (Recall.ai API key may not be configured)",
        )
    return dispatcher


def _get_transcript_poller(request: Request) -> Any:
    """Retrieve TranscriptPoller from app.state, 503 if not available."""
    poller = getattr(request.app.state, "transcript_poller", None)
    if poller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transcript poller not initialized (Recall.ai API key may not be configured)",
        )
    return poller


@router.get("/dispatch-bots", response_model=JobRunSummary)
async def dispatch_bots(request: Request) -> JobRunSummary:
    """Schedule bots for opted-in meetings starting soon."""
    return await _get_bot_dispatcher(request).dispatch_due()


@router.get("/poll-transcripts", response_model=JobRunSummary)
async def poll_transcripts(request: Request) -> JobRunSummary:
    """Collect transcripts for finished meetings and generate content."""
    return await _get_transcript_poller(request).poll()
