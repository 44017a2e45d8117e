"""Pydantic v2 schemas for the meeting lifecycle domain.

Defines the closed status/platform enums with their transition rules, the
internal calendar event shape returned by calendar sync, and the Meeting
record shared by the dispatcher, poller, and API layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class InvalidTransitionError(Exception):
    """Raised when a meeting status change is not allowed by the state machine."""

    def __init__(self, current: MeetingStatus, new: MeetingStatus) -> None:
        self.current = current
        self.new = new
        super().__init__(
            f"Invalid meeting status transition: {current.value} -> {new.value}"
        )


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting from opt-in through content generation."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, new: MeetingStatus) -> bool:
        return new in _TRANSITIONS[self]

    def ensure_transition(self, new: MeetingStatus) -> None:
        """Raise InvalidTransitionError unless ``self -> new`` is allowed."""
        if not self.can_transition_to(new):
            raise InvalidTransitionError(self, new)


_TRANSITIONS: dict[MeetingStatus, frozenset[MeetingStatus]] = {
    MeetingStatus.PENDING: frozenset(
        {MeetingStatus.SCHEDULED, MeetingStatus.ERROR, MeetingStatus.CANCELLED}
    ),
    MeetingStatus.SCHEDULED: frozenset(
        {MeetingStatus.COMPLETED, MeetingStatus.ERROR, MeetingStatus.CANCELLED}
    ),
    MeetingStatus.COMPLETED: frozenset(),
    MeetingStatus.ERROR: frozenset(),
    MeetingStatus.CANCELLED: frozenset(),
}


class MeetingPlatform(str, Enum):
    """Video-conferencing platform detected from the event's meeting link."""

    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"
    TEAMS = "teams"
    NONE = "none"


# ── Calendar Event Shape ─────────────────────────────────────────────────────


class Attendee(BaseModel):
    """A calendar event attendee."""

    email: str
    response_status: str | None = None


class CalendarEvent(BaseModel):
    """Provider-neutral calendar event returned by calendar sync."""

    id: str
    title: str = "No Title"
    start_time: datetime
    end_time: datetime | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    description: str = ""
    location: str = ""


class AccountEvents(BaseModel):
    """Upcoming events for one connected calendar account.

    ``error`` is set when the account could not be synced; ``events`` is
    then empty so callers can still render the account.
    """

    account_id: uuid.UUID | None = None
    account_email: str
    events: list[CalendarEvent] = Field(default_factory=list)
    error: str | None = None


# ── Meeting Models ───────────────────────────────────────────────────────────


class MeetingUpsert(BaseModel):
    """Fields written when a user opts a calendar event in or out of recording."""

    gcal_event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    meeting_url: str | None = None
    platform: MeetingPlatform = MeetingPlatform.NONE
    is_transcription_enabled: bool = False
    status: MeetingStatus = MeetingStatus.PENDING


class Meeting(BaseModel):
    """Persisted meeting record -- the spine every pipeline stage reads and mutates."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    gcal_event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    meeting_url: str | None = None
    platform: MeetingPlatform = MeetingPlatform.NONE
    is_transcription_enabled: bool = False
    recall_bot_id: str | None = None
    status: MeetingStatus = MeetingStatus.PENDING
    transcript: str | None = None
    error_message: str | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobRunSummary(BaseModel):
    """Counts reported by one run of the dispatch or transcript-poll job."""

    job: str
    checked: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class TranscriptionToggle(BaseModel):
    """Request body for enabling or disabling recording of a calendar event."""

    event: CalendarEvent
    enabled: bool
