"""Tests for MeetingService: the per-event transcription toggle."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.aftermeet.meetings.bot.dispatcher import BotDispatcher
from src.aftermeet.meetings.schemas import (
    CalendarEvent,
    InvalidTransitionError,
    MeetingPlatform,
    MeetingStatus,
)
from src.aftermeet.meetings.service import MeetingService

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _event(**overrides) -> CalendarEvent:
    fields = {
        "id": "evt-1",
        "title": "Client check-in",
        "start_time": NOW + timedelta(days=1),
        "end_time": NOW + timedelta(days=1, minutes=45),
        "location": "",
        "description": "Join: https://teams.microsoft.com/l/meetup-join/abc",
    }
    fields.update(overrides)
    return CalendarEvent(**fields)


@pytest.fixture
def recall():
    client = AsyncMock()
    client.create_bot = AsyncMock(return_value={"id": "bot-1"})
    client.delete_bot = AsyncMock(return_value=None)
    return client


@pytest.fixture
def service(meeting_repo, recall):
    return MeetingService(meeting_repo, BotDispatcher(recall, meeting_repo))


@pytest.mark.asyncio
async def test_enable_creates_meeting_and_dispatches_bot(service, meeting_repo, recall):
    meeting = await service.set_transcription("user-1", _event(), True)

    assert meeting.status == MeetingStatus.SCHEDULED
    assert meeting.recall_bot_id == "bot-1"
    assert meeting.platform == MeetingPlatform.TEAMS
    assert meeting.meeting_url == "https://teams.microsoft.com/l/meetup-join/abc"
    assert meeting.is_transcription_enabled
    assert len(meeting_repo.meetings) == 1
    assert recall.create_bot.call_args.args[0]["teams"] == {
        "meeting_url": "https://teams.microsoft.com/l/meetup-join/abc"
    }


@pytest.mark.asyncio
async def test_enable_without_link_records_error(service, recall):
    meeting = await service.set_transcription(
        "user-1", _event(description="In person, room 4"), True
    )

    assert meeting.status == MeetingStatus.ERROR
    assert meeting.error_message == "No meeting URL found"
    recall.create_bot.assert_not_called()


@pytest.mark.asyncio
async def test_enable_twice_keeps_single_bot(service, meeting_repo, recall):
    first = await service.set_transcription("user-1", _event(), True)
    second = await service.set_transcription("user-1", _event(), True)

    assert first.id == second.id
    assert second.recall_bot_id == "bot-1"
    assert recall.create_bot.await_count == 1
    assert len(meeting_repo.meetings) == 1


@pytest.mark.asyncio
async def test_enable_without_dispatcher_leaves_meeting_pending(meeting_repo):
    service = MeetingService(meeting_repo)

    meeting = await service.set_transcription("user-1", _event(), True)

    assert meeting.status == MeetingStatus.PENDING
    assert meeting.is_transcription_enabled


@pytest.mark.asyncio
async def test_disable_scheduled_meeting_cancels_bot(service, meeting_repo, recall):
    await service.set_transcription("user-1", _event(), True)

    meeting = await service.set_transcription("user-1", _event(), False)

    assert meeting.status == MeetingStatus.CANCELLED
    assert not meeting.is_transcription_enabled
    recall.delete_bot.assert_awaited_once_with("bot-1")


@pytest.mark.asyncio
async def test_disable_unknown_event_records_cancelled_meeting(service, meeting_repo, recall):
    meeting = await service.set_transcription("user-1", _event(id="evt-new"), False)

    assert meeting.status == MeetingStatus.CANCELLED
    assert not meeting.is_transcription_enabled
    recall.delete_bot.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status", [MeetingStatus.COMPLETED, MeetingStatus.ERROR, MeetingStatus.CANCELLED]
)
@pytest.mark.parametrize("enabled", [True, False])
async def test_terminal_meeting_cannot_be_toggled(
    service, meeting_repo, make_meeting, recall, status, enabled
):
    meeting_repo.add(make_meeting(gcal_event_id="evt-1", status=status))

    with pytest.raises(InvalidTransitionError):
        await service.set_transcription("user-1", _event(), enabled)

    recall.create_bot.assert_not_called()


@pytest.mark.asyncio
async def test_meetings_are_scoped_per_user(service, meeting_repo):
    await service.set_transcription("user-1", _event(), True)
    await service.set_transcription("user-2", _event(), True)

    assert len(meeting_repo.meetings) == 2
    assert {m.user_id for m in meeting_repo.meetings.values()} == {"user-1", "user-2"}


def _stale_reads(meeting_repo) -> None:
    """Make event lookups return their snapshot only after yielding to the loop."""
    read = meeting_repo.get_meeting_by_event_id

    async def slow_read(user_id, gcal_event_id):
        snapshot = await read(user_id, gcal_event_id)
        await asyncio.sleep(0)
        return snapshot

    meeting_repo.get_meeting_by_event_id = slow_read


@pytest.mark.asyncio
async def test_concurrent_enables_keep_scheduled_meeting(service, meeting_repo, recall):
    _stale_reads(meeting_repo)

    first, second = await asyncio.gather(
        service.set_transcription("user-1", _event(), True),
        service.set_transcription("user-1", _event(), True),
    )

    (stored,) = meeting_repo.meetings.values()
    assert stored.status == MeetingStatus.SCHEDULED
    assert stored.recall_bot_id == "bot-1"
    assert first.status == second.status == MeetingStatus.SCHEDULED
    assert recall.create_bot.await_count == 1
    assert await meeting_repo.list_awaiting_transcript(
        stored.end_time + timedelta(minutes=1)
    ) == [stored]


@pytest.mark.asyncio
async def test_disable_racing_enable_cancels_scheduled_bot(service, meeting_repo, recall):
    _stale_reads(meeting_repo)

    _, disabled = await asyncio.gather(
        service.set_transcription("user-1", _event(), True),
        service.set_transcription("user-1", _event(), False),
    )

    assert disabled.status == MeetingStatus.CANCELLED
    (stored,) = meeting_repo.meetings.values()
    assert stored.status == MeetingStatus.CANCELLED
    recall.delete_bot.assert_awaited_once_with("bot-1")
