"""Initial schema: connected accounts, meetings, automations, generated content.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Partial unique indexes double as upsert conflict targets:
- connected_accounts (user_id, provider) WHERE provider = 'linkedin'
- generated_content (meeting_id, type) WHERE automation_id IS NULL
- generated_content (meeting_id, automation_id) WHERE automation_id IS NOT NULL

No foreign key constraints (application-level referential integrity via
repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── connected_accounts ───────────────────────────────────────────────

    op.create_table(
        "connected_accounts",
        _id_column(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("provider_user_id", sa.String(255), nullable=False),
        sa.Column("provider_user_email", sa.String(320), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "provider",
            "provider_user_id",
            name="uq_account_user_provider_identity",
        ),
    )
    op.create_index(
        "ix_connected_accounts_user_id", "connected_accounts", ["user_id"]
    )
    op.create_index(
        "uq_account_user_single_provider",
        "connected_accounts",
        ["user_id", "provider"],
        unique=True,
        postgresql_where=sa.text("provider = 'linkedin'"),
    )

    # ── meetings ─────────────────────────────────────────────────────────

    op.create_table(
        "meetings",
        _id_column(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("gcal_event_id", sa.String(300), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meeting_url", sa.String(1000), nullable=True),
        sa.Column(
            "platform",
            sa.String(50),
            server_default=sa.text("'none'"),
            nullable=False,
        ),
        sa.Column(
            "is_transcription_enabled",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("recall_bot_id", sa.String(200), nullable=True),
        sa.Column(
            "status",
            sa.String(50),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "gcal_event_id", name="uq_meeting_user_event"
        ),
    )
    op.create_index("ix_meetings_user_id", "meetings", ["user_id"])
    op.create_index(
        "ix_meetings_status_end_time", "meetings", ["status", "end_time"]
    )
    op.create_index(
        "ix_meetings_status_start_time", "meetings", ["status", "start_time"]
    )

    # ── automations ──────────────────────────────────────────────────────

    op.create_table(
        "automations",
        _id_column(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_automations_user_id", "automations", ["user_id"])

    # ── generated_content ────────────────────────────────────────────────

    op.create_table(
        "generated_content",
        _id_column(),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("automation_id", UUID(as_uuid=True), nullable=True),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_generated_content_meeting_id", "generated_content", ["meeting_id"]
    )
    op.create_index(
        "uq_content_meeting_type",
        "generated_content",
        ["meeting_id", "type"],
        unique=True,
        postgresql_where=sa.text("automation_id IS NULL"),
    )
    op.create_index(
        "uq_content_meeting_automation",
        "generated_content",
        ["meeting_id", "automation_id"],
        unique=True,
        postgresql_where=sa.text("automation_id IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_table("generated_content")
    op.drop_table("automations")
    op.drop_table("meetings")
    op.drop_table("connected_accounts")
