"""Meeting persistence model.

One row per (user, calendar event) the user has opted in or out of recording.
No foreign key constraints (application-level referential integrity via
repository).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.aftermeet.core.database import Base


class MeetingModel(Base):
    """Calendar event flagged for (or opted out of) bot recording.

    Status column holds a MeetingStatus value; transitions are enforced by the
    repository's conditional updates, not by the database.
    """

    __tablename__ = "meetings"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "gcal_event_id",
            name="uq_meeting_user_event",
        ),
        Index("ix_meetings_status_end_time", "status", "end_time"),
        Index("ix_meetings_status_start_time", "status", "start_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    gcal_event_id: Mapped[str] = mapped_column(String(300), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    meeting_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    platform: Mapped[str] = mapped_column(
        String(50),
        default="none",
        server_default=text("'none'"),
    )
    is_transcription_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    recall_bot_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default="pending",
        server_default=text("'pending'"),
    )
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
