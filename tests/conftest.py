"""Shared test fixtures: in-memory repositories and a scripted LLM service.

The in-memory repositories mirror the conditional-update semantics of the
SQL repositories (transitions only apply when the stored status matches,
leases only go to one caller) so pipeline components can be exercised
without a database.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.aftermeet.accounts.schemas import (
    AccountProvider,
    ConnectedAccount,
    ConnectedAccountUpsert,
    TokenGrant,
)
from src.aftermeet.content.schemas import Automation, AutomationCreate, GeneratedContent
from src.aftermeet.meetings.schemas import (
    Meeting,
    MeetingPlatform,
    MeetingStatus,
    MeetingUpsert,
)

USER_ID = "user-1"
NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


# ── Meetings ────────────────────────────────────────────────────────────────


class InMemoryMeetingRepository:
    """MeetingRepository double backed by a dict."""

    def __init__(self) -> None:
        self.meetings: dict[uuid.UUID, Meeting] = {}

    def add(self, meeting: Meeting) -> Meeting:
        self.meetings[meeting.id] = meeting
        return meeting

    async def upsert_meeting(self, user_id: str, data: MeetingUpsert) -> Meeting:
        existing = next(
            (
                m
                for m in self.meetings.values()
                if m.user_id == user_id and m.gcal_event_id == data.gcal_event_id
            ),
            None,
        )
        if data.status != MeetingStatus.PENDING:
            MeetingStatus.PENDING.ensure_transition(data.status)
        if existing is None:
            meeting = Meeting(user_id=user_id, **data.model_dump())
        elif existing.status != MeetingStatus.PENDING:
            return existing
        else:
            meeting = existing.model_copy(update=data.model_dump())
        self.meetings[meeting.id] = meeting
        return meeting

    async def get_meeting(self, user_id: str, meeting_id: str) -> Meeting | None:
        meeting = self.meetings.get(uuid.UUID(meeting_id))
        if meeting is None or meeting.user_id != user_id:
            return None
        return meeting

    async def get_meeting_by_event_id(
        self, user_id: str, gcal_event_id: str
    ) -> Meeting | None:
        for meeting in self.meetings.values():
            if meeting.user_id == user_id and meeting.gcal_event_id == gcal_event_id:
                return meeting
        return None

    async def list_meetings(
        self, user_id: str, status: MeetingStatus | None = None
    ) -> list[Meeting]:
        meetings = [
            m
            for m in self.meetings.values()
            if m.user_id == user_id and (status is None or m.status == status)
        ]
        return sorted(meetings, key=lambda m: m.start_time, reverse=True)

    async def list_meetings_for_events(
        self, user_id: str, gcal_event_ids: list[str]
    ) -> dict[str, Meeting]:
        return {
            m.gcal_event_id: m
            for m in self.meetings.values()
            if m.user_id == user_id and m.gcal_event_id in gcal_event_ids
        }

    async def list_due_for_dispatch(
        self, window_start: datetime, window_end: datetime
    ) -> list[Meeting]:
        meetings = [
            m
            for m in self.meetings.values()
            if m.status == MeetingStatus.PENDING
            and m.is_transcription_enabled
            and m.recall_bot_id is None
            and window_start <= m.start_time <= window_end
        ]
        return sorted(meetings, key=lambda m: m.start_time)

    async def list_awaiting_transcript(self, now: datetime) -> list[Meeting]:
        meetings = [
            m
            for m in self.meetings.values()
            if m.status == MeetingStatus.SCHEDULED
            and m.recall_bot_id is not None
            and m.end_time <= now
        ]
        return sorted(meetings, key=lambda m: m.end_time)

    async def transition(
        self,
        meeting_id: uuid.UUID,
        expected: MeetingStatus,
        new: MeetingStatus,
        **fields: Any,
    ) -> Meeting | None:
        expected.ensure_transition(new)
        stored = self.meetings.get(meeting_id)
        if stored is None or stored.status != expected:
            return None
        updated = stored.model_copy(update={"status": new, **fields})
        self.meetings[meeting_id] = updated
        return updated

    async def assign_bot(self, meeting_id: uuid.UUID, bot_id: str) -> Meeting | None:
        stored = self.meetings.get(meeting_id)
        if stored is None or stored.recall_bot_id is not None:
            return None
        return await self.transition(
            meeting_id,
            MeetingStatus.PENDING,
            MeetingStatus.SCHEDULED,
            recall_bot_id=bot_id,
            error_message=None,
        )

    async def claim_for_processing(
        self, meeting_id: uuid.UUID, now: datetime, lease_seconds: int
    ) -> bool:
        stored = self.meetings.get(meeting_id)
        if stored is None or stored.status != MeetingStatus.SCHEDULED:
            return False
        if stored.lease_expires_at is not None and stored.lease_expires_at >= now:
            return False
        self.meetings[meeting_id] = stored.model_copy(
            update={"lease_expires_at": now + timedelta(seconds=lease_seconds)}
        )
        return True

    async def release_lease(self, meeting_id: uuid.UUID) -> None:
        stored = self.meetings[meeting_id]
        self.meetings[meeting_id] = stored.model_copy(update={"lease_expires_at": None})


# ── Automations and Content ─────────────────────────────────────────────────


class InMemoryAutomationRepository:
    """AutomationRepository double."""

    def __init__(self) -> None:
        self.automations: dict[uuid.UUID, Automation] = {}

    def add(self, user_id: str, name: str, platform: str, prompt: str) -> Automation:
        automation = Automation(user_id=user_id, name=name, platform=platform, prompt=prompt)
        self.automations[automation.id] = automation
        return automation

    async def list_automations(self, user_id: str) -> list[Automation]:
        return [a for a in self.automations.values() if a.user_id == user_id]

    async def create_automation(self, user_id: str, data: AutomationCreate) -> Automation:
        return self.add(user_id, data.name, data.platform, data.prompt)

    async def update_automation(
        self, user_id: str, automation_id: uuid.UUID, data: AutomationCreate
    ) -> Automation | None:
        stored = self.automations.get(automation_id)
        if stored is None or stored.user_id != user_id:
            return None
        updated = stored.model_copy(update=data.model_dump())
        self.automations[automation_id] = updated
        return updated

    async def delete_automation(self, user_id: str, automation_id: uuid.UUID) -> bool:
        stored = self.automations.get(automation_id)
        if stored is None or stored.user_id != user_id:
            return False
        del self.automations[automation_id]
        return True


class InMemoryContentRepository:
    """ContentRepository double keyed like the partial unique indexes."""

    def __init__(self) -> None:
        self.rows: dict[tuple, GeneratedContent] = {}

    async def upsert_content(
        self,
        meeting_id: uuid.UUID,
        content_type: str,
        content: str,
        automation_id: uuid.UUID | None = None,
    ) -> GeneratedContent:
        key = (meeting_id, automation_id) if automation_id else (meeting_id, content_type)
        existing = self.rows.get(key)
        if existing is None:
            row = GeneratedContent(
                meeting_id=meeting_id,
                automation_id=automation_id,
                type=content_type,
                content=content,
            )
        else:
            row = existing.model_copy(update={"content": content, "type": content_type})
        self.rows[key] = row
        return row

    async def list_for_meeting(self, meeting_id: uuid.UUID) -> list[GeneratedContent]:
        return [r for r in self.rows.values() if r.meeting_id == meeting_id]


# ── Accounts ────────────────────────────────────────────────────────────────


class InMemoryAccountRepository:
    """AccountRepository double."""

    def __init__(self) -> None:
        self.accounts: list[ConnectedAccount] = []

    def add(self, **fields: Any) -> ConnectedAccount:
        account = ConnectedAccount(id=uuid.uuid4(), **fields)
        self.accounts.append(account)
        return account

    async def upsert_account(
        self, user_id: str, data: ConnectedAccountUpsert
    ) -> ConnectedAccount:
        for index, account in enumerate(self.accounts):
            same_identity = account.provider_user_id == data.provider_user_id
            if account.user_id == user_id and account.provider == data.provider and (
                data.provider.is_single_account or same_identity
            ):
                values = data.model_dump()
                if values["refresh_token"] is None:
                    values["refresh_token"] = account.refresh_token
                self.accounts[index] = account.model_copy(update=values)
                return self.accounts[index]
        return self.add(user_id=user_id, **data.model_dump())

    async def list_accounts(
        self, user_id: str, provider: AccountProvider | None = None
    ) -> list[ConnectedAccount]:
        return [
            a
            for a in self.accounts
            if a.user_id == user_id and (provider is None or a.provider == provider)
        ]

    async def get_account(
        self, user_id: str, provider: AccountProvider
    ) -> ConnectedAccount | None:
        accounts = await self.list_accounts(user_id, provider)
        return accounts[0] if accounts else None

    async def update_tokens(
        self, account_id: uuid.UUID, grant: TokenGrant
    ) -> ConnectedAccount | None:
        for index, account in enumerate(self.accounts):
            if account.id == account_id:
                values = {"access_token": grant.access_token, "expires_at": grant.expires_at}
                if grant.refresh_token:
                    values["refresh_token"] = grant.refresh_token
                self.accounts[index] = account.model_copy(update=values)
                return self.accounts[index]
        return None

    async def delete_account(self, user_id: str, account_id: uuid.UUID) -> bool:
        for account in self.accounts:
            if account.id == account_id and account.user_id == user_id:
                self.accounts.remove(account)
                return True
        return False


# ── LLM ─────────────────────────────────────────────────────────────────────


class FakeLLMService:
    """LLMService double returning numbered outputs.

    Args:
        fail_on: Substring of the system prompt that makes a call raise.
    """

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[dict] = []
        self._fail_on = fail_on

    async def completion(
        self,
        messages: list[dict],
        model: str = "content",
        timeout: float | None = None,
        metadata: dict | None = None,
        **kwargs: Any,
    ) -> dict:
        self.calls.append({"messages": messages, "model": model, "metadata": metadata})
        system = messages[0]["content"]
        if self._fail_on and self._fail_on in system:
            raise RuntimeError("LLM provider unavailable")
        return {
            "content": f"generated #{len(self.calls)}",
            "model": model,
            "usage": {},
        }


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def meeting_repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def automation_repo() -> InMemoryAutomationRepository:
    return InMemoryAutomationRepository()


@pytest.fixture
def content_repo() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def account_repo() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def llm() -> FakeLLMService:
    return FakeLLMService()


@pytest.fixture
def make_meeting():
    """Factory for Meeting records with sensible defaults around NOW."""

    def _make(**overrides: Any) -> Meeting:
        fields: dict[str, Any] = {
            "user_id": USER_ID,
            "gcal_event_id": f"evt-{uuid.uuid4().hex[:8]}",
            "title": "Quarterly review",
            "start_time": NOW + timedelta(minutes=10),
            "end_time": NOW + timedelta(minutes=40),
            "meeting_url": "https://zoom.us/j/123456789",
            "platform": MeetingPlatform.ZOOM,
            "is_transcription_enabled": True,
            "status": MeetingStatus.PENDING,
        }
        fields.update(overrides)
        return Meeting(**fields)

    return _make


@pytest.fixture
def make_llm():
    """Factory for FakeLLMService instances (e.g. ``make_llm(fail_on="email")``)."""
    return FakeLLMService
