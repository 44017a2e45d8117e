"""Pydantic v2 schemas for automations and generated content."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

CONTENT_TYPE_EMAIL = "email"
SOCIAL_POST_PREFIX = "social_post_"


def social_post_type(platform: str) -> str:
    """Content type for a post generated by an automation targeting ``platform``."""
    return f"{SOCIAL_POST_PREFIX}{platform}"


# ── Automations ──────────────────────────────────────────────────────────────


class AutomationCreate(BaseModel):
    """User input for creating or editing an automation."""

    name: str
    platform: str
    prompt: str = Field(description="Instruction given to the LLM for this post style")

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Name must be at least 3 characters")
        return value

    @field_validator("platform")
    @classmethod
    def _validate_platform(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("Platform is required")
        return value

    @field_validator("prompt")
    @classmethod
    def _validate_prompt(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("Description must be at least 10 characters")
        return value


class Automation(BaseModel):
    """A user-defined content-generation rule."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    name: str
    platform: str
    prompt: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def content_type(self) -> str:
        return social_post_type(self.platform)


# ── Generated Content ────────────────────────────────────────────────────────


class GeneratedContent(BaseModel):
    """One AI output artifact tied to a meeting."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    meeting_id: uuid.UUID
    automation_id: uuid.UUID | None = None
    type: str
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_social_post(self) -> bool:
        return self.type.startswith(SOCIAL_POST_PREFIX)


class GenerationResult(BaseModel):
    """Outcome of one content generation run for a meeting."""

    meeting_id: uuid.UUID
    email: GeneratedContent | None = None
    social_posts: list[GeneratedContent] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)

    @property
    def persisted_count(self) -> int:
        return len(self.social_posts) + (1 if self.email is not None else 0)
