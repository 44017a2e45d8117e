"""Automation and generated content persistence models.

Generated content is unique per (meeting_id, type) for fixed types such as
the follow-up email, and per (meeting_id, automation_id) for automation
output. Both are partial unique indexes used as upsert conflict targets.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.aftermeet.core.database import Base

FIXED_TYPE_INDEX_WHERE = text("automation_id IS NULL")
AUTOMATION_INDEX_WHERE = text("automation_id IS NOT NULL")


class AutomationModel(Base):
    """User-defined prompt that turns transcripts into social posts."""

    __tablename__ = "automations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class GeneratedContentModel(Base):
    """Email or social post generated from a meeting transcript."""

    __tablename__ = "generated_content"
    __table_args__ = (
        Index(
            "uq_content_meeting_type",
            "meeting_id",
            "type",
            unique=True,
            postgresql_where=FIXED_TYPE_INDEX_WHERE,
        ),
        Index(
            "uq_content_meeting_automation",
            "meeting_id",
            "automation_id",
            unique=True,
            postgresql_where=AUTOMATION_INDEX_WHERE,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    automation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
