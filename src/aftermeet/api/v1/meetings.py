"""REST endpoints for calendar events, meetings, and the recording toggle.

All endpoints require an authenticated session; the caller's user id is
passed explicitly to every component and every lookup is scoped by it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.aftermeet.api.deps import get_current_user_id
from src.aftermeet.content.schemas import CONTENT_TYPE_EMAIL, GeneratedContent
from src.aftermeet.meetings.links import extract_meeting_link
from src.aftermeet.meetings.schemas import (
    AccountEvents,
    Attendee,
    InvalidTransitionError,
    Meeting,
    MeetingPlatform,
    MeetingStatus,
    TranscriptionToggle,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    """Meeting as returned by the API (lease bookkeeping omitted)."""

    id: uuid.UUID
    gcal_event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    meeting_url: str | None = None
    platform: MeetingPlatform
    is_transcription_enabled: bool
    recall_bot_id: str | None = None
    status: MeetingStatus
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContentResponse(BaseModel):
    id: uuid.UUID
    type: str
    automation_id: uuid.UUID | None = None
    content: str
    updated_at: datetime | None = None


class MeetingDetailResponse(MeetingResponse):
    """Meeting with its transcript and generated content."""

    transcript: str | None = None
    email: ContentResponse | None = None
    social_posts: list[ContentResponse] = Field(default_factory=list)


class CalendarEventResponse(BaseModel):
    """Upcoming event merged with its meeting record, if the user toggled it."""

    id: str
    title: str
    start_time: datetime
    end_time: datetime | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    description: str = ""
    location: str = ""
    meeting_url: str | None = None
    platform: MeetingPlatform = MeetingPlatform.NONE
    meeting_id: uuid.UUID | None = None
    status: MeetingStatus | None = None
    is_transcription_enabled: bool = False


class CalendarAccountResponse(BaseModel):
    account_id: uuid.UUID | None = None
    account_email: str
    events: list[CalendarEventResponse] = Field(default_factory=list)
    error: str | None = None


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_meeting_repository(request: Request) -> Any:
    """Retrieve MeetingRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "meeting_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting repository not initialized",
        )
    return repo


def _get_content_repository(request: Request) -> Any:
    """Retrieve ContentRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "content_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Content repository not initialized",
        )
    return repo


def _get_calendar_sync(request: Request) -> Any:
    """Retrieve CalendarSync from app.state, 503 if not available."""
    sync = getattr(request.app.state, "calendar_sync", None)
    if sync is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar sync not initialized (Google OAuth may not be configured)",
        )
    return sync


def _get_meeting_service(request: Request) -> Any:
    """Retrieve MeetingService from app.state, 503 if not available."""
    service = getattr(request.app.state, "meeting_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting service not initialized",
        )
    return service


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _meeting_to_response(m: Meeting) -> MeetingResponse:
    return MeetingResponse.model_validate(m.model_dump())


def _content_to_response(c: GeneratedContent) -> ContentResponse:
    return ContentResponse.model_validate(c.model_dump())


def _merge_account_events(
    entry: AccountEvents, meetings: dict[str, Meeting]
) -> CalendarAccountResponse:
    events = []
    for event in entry.events:
        meeting = meetings.get(event.id)
        if meeting is not None:
            meeting_url, platform = meeting.meeting_url, meeting.platform
        else:
            meeting_url, platform = extract_meeting_link(event.location, event.description)
        events.append(
            CalendarEventResponse(
                **event.model_dump(),
                meeting_url=meeting_url,
                platform=platform,
                meeting_id=meeting.id if meeting else None,
                status=meeting.status if meeting else None,
                is_transcription_enabled=(
                    meeting.is_transcription_enabled if meeting else False
                ),
            )
        )
    return CalendarAccountResponse(
        account_id=entry.account_id,
        account_email=entry.account_email,
        events=events,
        error=entry.error,
    )


# ── REST Endpoints ───────────────────────────────────────────────────────────


@router.get("/calendar", response_model=list[CalendarAccountResponse])
async def list_calendar_events(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[CalendarAccountResponse]:
    """Upcoming events from every connected Google account, grouped by account.

    An account that failed to sync is still listed, with no events and an
    ``error`` describing the failure.
    """
    calendar_sync = _get_calendar_sync(request)
    repo = _get_meeting_repository(request)

    entries = await calendar_sync.sync(user_id)
    event_ids = [event.id for entry in entries for event in entry.events]
    meetings = await repo.list_meetings_for_events(user_id, event_ids)
    return [_merge_account_events(entry, meetings) for entry in entries]


@router.get("", response_model=list[MeetingResponse])
async def list_meetings(
    request: Request,
    status_filter: MeetingStatus | None = Query(
        default=None,
        alias="status",
        description="Filter by meeting status",
    ),
    user_id: str = Depends(get_current_user_id),
) -> list[MeetingResponse]:
    """List the caller's meetings, newest first."""
    repo = _get_meeting_repository(request)
    meetings = await repo.list_meetings(user_id, status=status_filter)
    return [_meeting_to_response(m) for m in meetings]


@router.get("/{meeting_id}", response_model=MeetingDetailResponse)
async def get_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> MeetingDetailResponse:
    """Meeting details with transcript, follow-up email, and social posts."""
    repo = _get_meeting_repository(request)
    content_repo = _get_content_repository(request)

    meeting = await repo.get_meeting(user_id, str(meeting_id))
    if meeting is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Meeting not found: {meeting_id}",
        )

    contents = await content_repo.list_for_meeting(meeting.id)
    email = next((c for c in contents if c.type == CONTENT_TYPE_EMAIL), None)
    posts = [c for c in contents if c.is_social_post]

    return MeetingDetailResponse(
        **_meeting_to_response(meeting).model_dump(),
        transcript=meeting.transcript,
        email=_content_to_response(email) if email else None,
        social_posts=[_content_to_response(p) for p in posts],
    )


@router.post("/transcription", response_model=MeetingResponse)
async def set_transcription(
    body: TranscriptionToggle,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> MeetingResponse:
    """Enable or disable the recording bot for a calendar event.

    Enabling dispatches a bot immediately when the event has a meeting link.
    Returns 409 if the meeting already finished (completed, error, cancelled).
    """
    service = _get_meeting_service(request)
    try:
        meeting = await service.set_transcription(user_id, body.event, body.enabled)
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        )
    return _meeting_to_response(meeting)
