"""Automation and generated content repositories.

AutomationRepository scopes every query by user_id so a user can only see
or change their own automations. ContentRepository writes generated content
through upserts keyed on (meeting_id, type) or (meeting_id, automation_id),
which makes generation re-runnable.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.aftermeet.content.models import (
    AUTOMATION_INDEX_WHERE,
    FIXED_TYPE_INDEX_WHERE,
    AutomationModel,
    GeneratedContentModel,
)
from src.aftermeet.content.schemas import (
    Automation,
    AutomationCreate,
    GeneratedContent,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_automation(model: AutomationModel) -> Automation:
    """Convert AutomationModel to Automation schema."""
    return Automation(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        platform=model.platform,
        prompt=model.prompt,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def _model_to_content(model: GeneratedContentModel) -> GeneratedContent:
    """Convert GeneratedContentModel to GeneratedContent schema."""
    return GeneratedContent(
        id=model.id,
        meeting_id=model.meeting_id,
        automation_id=model.automation_id,
        type=model.type,
        content=model.content,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def build_content_upsert(
    meeting_id: uuid.UUID,
    content_type: str,
    content: str,
    automation_id: uuid.UUID | None = None,
) -> Any:
    """INSERT ... ON CONFLICT DO UPDATE replacing content for the same key."""
    stmt = insert(GeneratedContentModel).values(
        meeting_id=meeting_id,
        automation_id=automation_id,
        type=content_type,
        content=content,
    )
    set_ = {
        "content": stmt.excluded.content,
        "type": stmt.excluded.type,
        "updated_at": func.now(),
    }
    if automation_id is None:
        stmt = stmt.on_conflict_do_update(
            index_elements=["meeting_id", "type"],
            index_where=FIXED_TYPE_INDEX_WHERE,
            set_=set_,
        )
    else:
        stmt = stmt.on_conflict_do_update(
            index_elements=["meeting_id", "automation_id"],
            index_where=AUTOMATION_INDEX_WHERE,
            set_=set_,
        )
    return stmt.returning(GeneratedContentModel)


# ── Automations ─────────────────────────────────────────────────────────────


class AutomationRepository:
    """Async CRUD for a user's automations.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def list_automations(self, user_id: str) -> list[Automation]:
        async for session in self._session_factory():
            stmt = (
                select(AutomationModel)
                .where(AutomationModel.user_id == user_id)
                .order_by(AutomationModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_automation(m) for m in result.scalars().all()]

    async def create_automation(
        self, user_id: str, data: AutomationCreate
    ) -> Automation:
        async for session in self._session_factory():
            model = AutomationModel(
                user_id=user_id,
                name=data.name,
                platform=data.platform,
                prompt=data.prompt,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "automations.created",
                user_id=user_id,
                automation_id=str(model.id),
                platform=data.platform,
            )
            return _model_to_automation(model)

    async def update_automation(
        self, user_id: str, automation_id: uuid.UUID, data: AutomationCreate
    ) -> Automation | None:
        """Replace an automation's fields. Returns None if the user does not own it."""
        async for session in self._session_factory():
            stmt = (
                update(AutomationModel)
                .where(
                    AutomationModel.id == automation_id,
                    AutomationModel.user_id == user_id,
                )
                .values(name=data.name, platform=data.platform, prompt=data.prompt)
                .returning(AutomationModel)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            await session.commit()
            return _model_to_automation(model) if model is not None else None

    async def delete_automation(
        self, user_id: str, automation_id: uuid.UUID
    ) -> bool:
        async for session in self._session_factory():
            stmt = delete(AutomationModel).where(
                AutomationModel.id == automation_id,
                AutomationModel.user_id == user_id,
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0


# ── Generated Content ───────────────────────────────────────────────────────


class ContentRepository:
    """Upsert and read generated content.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def upsert_content(
        self,
        meeting_id: uuid.UUID,
        content_type: str,
        content: str,
        automation_id: uuid.UUID | None = None,
    ) -> GeneratedContent:
        """Insert or replace the content row for this (meeting, type|automation) key.

        Args:
            meeting_id: Meeting the content was generated for.
            content_type: ``email`` or ``social_post_<platform>``.
            content: Generated text.
            automation_id: Originating automation, None for fixed types.

        Returns:
            The persisted GeneratedContent.
        """
        async for session in self._session_factory():
            result = await session.execute(
                build_content_upsert(meeting_id, content_type, content, automation_id),
                execution_options={"populate_existing": True},
            )
            model = result.scalar_one()
            await session.commit()
            return _model_to_content(model)

    async def list_for_meeting(self, meeting_id: uuid.UUID) -> list[GeneratedContent]:
        async for session in self._session_factory():
            stmt = (
                select(GeneratedContentModel)
                .where(GeneratedContentModel.meeting_id == meeting_id)
                .order_by(GeneratedContentModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_content(m) for m in result.scalars().all()]
