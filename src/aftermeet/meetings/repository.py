"""Meeting repository -- async persistence for the meeting lifecycle.

Provides MeetingRepository with the session_factory callable pattern.
User-facing reads take user_id as first argument for ownership scoping;
the batch-job selectors (dispatch, transcript polling) are cross-user.

Every status write is a conditional UPDATE keyed on the expected prior
status, so two overlapping job runs cannot both move the same meeting.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.aftermeet.meetings.models import MeetingModel
from src.aftermeet.meetings.schemas import (
    Meeting,
    MeetingPlatform,
    MeetingStatus,
    MeetingUpsert,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=model.id,
        user_id=model.user_id,
        gcal_event_id=model.gcal_event_id,
        title=model.title,
        start_time=model.start_time,
        end_time=model.end_time,
        meeting_url=model.meeting_url,
        platform=MeetingPlatform(model.platform),
        is_transcription_enabled=model.is_transcription_enabled,
        recall_bot_id=model.recall_bot_id,
        status=MeetingStatus(model.status),
        transcript=model.transcript,
        error_message=model.error_message,
        lease_expires_at=model.lease_expires_at,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# ── Statement Builders ──────────────────────────────────────────────────────


def build_meeting_upsert(user_id: str, data: MeetingUpsert) -> Any:
    """INSERT ... ON CONFLICT (user_id, gcal_event_id) DO UPDATE for a meeting.

    The conflict update only applies while the stored meeting is still
    ``pending``; a meeting that already has a bot or reached a terminal
    status is left untouched and the statement returns no row.

    Raises:
        InvalidTransitionError: If ``data.status`` is not reachable from pending.
    """
    if data.status != MeetingStatus.PENDING:
        MeetingStatus.PENDING.ensure_transition(data.status)
    values = {
        "user_id": user_id,
        "gcal_event_id": data.gcal_event_id,
        "title": data.title,
        "start_time": data.start_time,
        "end_time": data.end_time,
        "meeting_url": data.meeting_url,
        "platform": data.platform.value,
        "is_transcription_enabled": data.is_transcription_enabled,
        "status": data.status.value,
    }
    stmt = insert(MeetingModel).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["user_id", "gcal_event_id"],
        set_={
            "title": stmt.excluded.title,
            "start_time": stmt.excluded.start_time,
            "end_time": stmt.excluded.end_time,
            "meeting_url": stmt.excluded.meeting_url,
            "platform": stmt.excluded.platform,
            "is_transcription_enabled": stmt.excluded.is_transcription_enabled,
            "status": stmt.excluded.status,
            "updated_at": func.now(),
        },
        where=MeetingModel.status == MeetingStatus.PENDING.value,
    ).returning(MeetingModel)


def build_transition(
    meeting_id: uuid.UUID,
    expected: MeetingStatus,
    new: MeetingStatus,
    **fields: Any,
) -> Any:
    """UPDATE meetings SET status = new WHERE id = :id AND status = expected."""
    expected.ensure_transition(new)
    values = {"status": new.value, **fields}
    return (
        update(MeetingModel)
        .where(
            MeetingModel.id == meeting_id,
            MeetingModel.status == expected.value,
        )
        .values(**values)
        .returning(MeetingModel)
        .execution_options(synchronize_session=False)
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD and conditional state updates for meetings.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Writes from the user toggle ──────────────────────────────────────

    async def upsert_meeting(self, user_id: str, data: MeetingUpsert) -> Meeting:
        """Insert or update the meeting for (user_id, gcal_event_id).

        Args:
            user_id: Owning user id.
            data: Event fields and the requested opt-in state.

        Returns:
            The persisted Meeting. If the stored meeting had already moved
            past ``pending``, it is returned unchanged.
        """
        async for session in self._session_factory():
            stmt = build_meeting_upsert(user_id, data)
            result = await session.execute(
                stmt, execution_options={"populate_existing": True}
            )
            model = result.scalar_one_or_none()
            await session.commit()
            if model is None:
                stored = await session.execute(
                    select(MeetingModel).where(
                        MeetingModel.user_id == user_id,
                        MeetingModel.gcal_event_id == data.gcal_event_id,
                    )
                )
                model = stored.scalar_one()
                logger.info(
                    "meetings.upsert_skipped",
                    meeting_id=str(model.id),
                    user_id=user_id,
                    status=model.status,
                )
                return _model_to_meeting(model)
            logger.info(
                "meetings.upserted",
                meeting_id=str(model.id),
                user_id=user_id,
                status=model.status,
            )
            return _model_to_meeting(model)

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_meeting(self, user_id: str, meeting_id: str) -> Meeting | None:
        """Get a meeting by ID, scoped to its owner."""
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.user_id == user_id,
                MeetingModel.id == uuid.UUID(meeting_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def get_meeting_by_event_id(
        self, user_id: str, gcal_event_id: str
    ) -> Meeting | None:
        """Get a meeting by Google Calendar event ID."""
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.user_id == user_id,
                MeetingModel.gcal_event_id == gcal_event_id,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def list_meetings(
        self, user_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        """List a user's meetings, newest first, optionally filtered by status."""
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(MeetingModel.user_id == user_id)
            if status is not None:
                stmt = stmt.where(MeetingModel.status == status.value)
            stmt = stmt.order_by(MeetingModel.start_time.desc())
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def list_meetings_for_events(
        self, user_id: str, gcal_event_ids: list[str]
    ) -> dict[str, Meeting]:
        """Map gcal_event_id -> Meeting for the given events (missing ids omitted)."""
        if not gcal_event_ids:
            return {}
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.user_id == user_id,
                MeetingModel.gcal_event_id.in_(gcal_event_ids),
            )
            result = await session.execute(stmt)
            return {
                m.gcal_event_id: _model_to_meeting(m)
                for m in result.scalars().all()
            }

    # ── Batch-job selectors ──────────────────────────────────────────────

    async def list_due_for_dispatch(
        self, window_start: datetime, window_end: datetime
    ) -> list[Meeting]:
        """Pending, opted-in meetings without a bot that start inside the window."""
        async for session in self._session_factory():
            stmt = (
                select(MeetingModel)
                .where(
                    MeetingModel.status == MeetingStatus.PENDING.value,
                    MeetingModel.is_transcription_enabled.is_(True),
                    MeetingModel.recall_bot_id.is_(None),
                    MeetingModel.start_time >= window_start,
                    MeetingModel.start_time <= window_end,
                )
                .order_by(MeetingModel.start_time)
            )
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def list_awaiting_transcript(self, now: datetime) -> list[Meeting]:
        """Scheduled meetings with a bot whose end time has passed."""
        async for session in self._session_factory():
            stmt = (
                select(MeetingModel)
                .where(
                    MeetingModel.status == MeetingStatus.SCHEDULED.value,
                    MeetingModel.recall_bot_id.is_not(None),
                    MeetingModel.end_time <= now,
                )
                .order_by(MeetingModel.end_time)
            )
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    # ── Conditional state updates ────────────────────────────────────────

    async def transition(
        self,
        meeting_id: uuid.UUID,
        expected: MeetingStatus,
        new: MeetingStatus,
        **fields: Any,
    ) -> Meeting | None:
        """Move a meeting from ``expected`` to ``new`` if it is still ``expected``.

        Args:
            meeting_id: Meeting UUID.
            expected: Status the caller last observed.
            new: Target status; must be reachable from ``expected``.
            **fields: Extra columns to write in the same statement.

        Returns:
            The updated Meeting, or None if the stored status no longer
            matched (another run got there first).

        Raises:
            InvalidTransitionError: If ``expected -> new`` is not allowed.
        """
        async for session in self._session_factory():
            stmt = build_transition(meeting_id, expected, new, **fields)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            await session.commit()
            if model is None:
                logger.info(
                    "meetings.transition_skipped",
                    meeting_id=str(meeting_id),
                    expected=expected.value,
                    new=new.value,
                )
                return None
            return _model_to_meeting(model)

    async def assign_bot(self, meeting_id: uuid.UUID, bot_id: str) -> Meeting | None:
        """Record the bot id and move pending -> scheduled, only if no bot is set yet."""
        async for session in self._session_factory():
            stmt = build_transition(
                meeting_id,
                MeetingStatus.PENDING,
                MeetingStatus.SCHEDULED,
                recall_bot_id=bot_id,
                error_message=None,
            ).where(MeetingModel.recall_bot_id.is_(None))
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            await session.commit()
            return _model_to_meeting(model) if model is not None else None

    async def claim_for_processing(
        self, meeting_id: uuid.UUID, now: datetime, lease_seconds: int
    ) -> bool:
        """Take a processing lease on a scheduled meeting.

        Returns:
            True if this caller now holds the lease; False if the meeting
            left ``scheduled`` or another run holds an unexpired lease.
        """
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(
                    MeetingModel.id == meeting_id,
                    MeetingModel.status == MeetingStatus.SCHEDULED.value,
                    or_(
                        MeetingModel.lease_expires_at.is_(None),
                        MeetingModel.lease_expires_at < now,
                    ),
                )
                .values(lease_expires_at=now + timedelta(seconds=lease_seconds))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def release_lease(self, meeting_id: uuid.UUID) -> None:
        """Drop the processing lease so the next poll run can pick the meeting up."""
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(MeetingModel.id == meeting_id)
                .values(lease_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()
