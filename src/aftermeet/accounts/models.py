"""Connected account persistence model.

Google accounts are unique per (user_id, provider, provider_user_id) so a user
can link several calendars. Single-account providers (LinkedIn) are further
restricted to one row per (user_id, provider) by a partial unique index.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.aftermeet.core.database import Base

SINGLE_ACCOUNT_INDEX_WHERE = text("provider = 'linkedin'")


class ConnectedAccountModel(Base):
    """OAuth tokens for one linked external identity."""

    __tablename__ = "connected_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "provider",
            "provider_user_id",
            name="uq_account_user_provider_identity",
        ),
        Index(
            "uq_account_user_single_provider",
            "user_id",
            "provider",
            unique=True,
            postgresql_where=SINGLE_ACCOUNT_INDEX_WHERE,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
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
