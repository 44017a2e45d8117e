"""Pydantic v2 schemas for connected OAuth accounts."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel


class AccountProvider(str, Enum):
    """External identity provider an account is linked to."""

    GOOGLE = "google"
    LINKEDIN = "linkedin"

    @property
    def is_single_account(self) -> bool:
        """Social platforms allow one linked identity per user."""
        return self in SINGLE_ACCOUNT_PROVIDERS


SINGLE_ACCOUNT_PROVIDERS = frozenset({AccountProvider.LINKEDIN})


class TokenGrant(BaseModel):
    """Tokens returned by an OAuth code exchange or refresh."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


class ConnectedAccountUpsert(BaseModel):
    """Fields written on a successful OAuth callback."""

    provider: AccountProvider
    provider_user_id: str
    provider_user_email: str | None = None
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


class ConnectedAccount(BaseModel):
    """Stored OAuth credential bundle for one external identity."""

    id: uuid.UUID
    user_id: str
    provider: AccountProvider
    provider_user_id: str
    provider_user_email: str | None = None
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime, skew_seconds: int = 0) -> bool:
        """True if the access token expires at or before ``now + skew_seconds``."""
        if self.expires_at is None:
            return False
        return self.expires_at <= now + timedelta(seconds=skew_seconds)

    @property
    def display_email(self) -> str:
        return self.provider_user_email or f"Account {str(self.id)[:6]}"


class ConnectedAccountPublic(BaseModel):
    """Account as returned by the API -- never includes tokens."""

    id: uuid.UUID
    provider: AccountProvider
    provider_user_id: str
    provider_user_email: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_account(cls, account: ConnectedAccount) -> ConnectedAccountPublic:
        return cls(
            id=account.id,
            provider=account.provider,
            provider_user_id=account.provider_user_id,
            provider_user_email=account.provider_user_email,
            expires_at=account.expires_at,
            created_at=account.created_at,
        )
