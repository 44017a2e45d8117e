"""Connected account repository -- the credential store.

Persists per-user OAuth tokens. Re-authenticating an identity refreshes its
tokens in place (upsert); token refresh during calendar sync updates the
same row. A refresh token already on file is kept when the provider does
not issue a new one.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.aftermeet.accounts.models import (
    SINGLE_ACCOUNT_INDEX_WHERE,
    ConnectedAccountModel,
)
from src.aftermeet.accounts.schemas import (
    AccountProvider,
    ConnectedAccount,
    ConnectedAccountUpsert,
    TokenGrant,
)

logger = structlog.get_logger(__name__)


def _model_to_account(model: ConnectedAccountModel) -> ConnectedAccount:
    """Convert ConnectedAccountModel to ConnectedAccount schema."""
    return ConnectedAccount(
        id=model.id,
        user_id=model.user_id,
        provider=AccountProvider(model.provider),
        provider_user_id=model.provider_user_id,
        provider_user_email=model.provider_user_email,
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expires_at=model.expires_at,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def build_account_upsert(user_id: str, data: ConnectedAccountUpsert) -> Any:
    """INSERT ... ON CONFLICT DO UPDATE keyed by the provider's uniqueness rule.

    Single-account providers conflict on (user_id, provider); the others on
    (user_id, provider, provider_user_id).
    """
    stmt = insert(ConnectedAccountModel).values(
        user_id=user_id,
        provider=data.provider.value,
        provider_user_id=data.provider_user_id,
        provider_user_email=data.provider_user_email,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
        expires_at=data.expires_at,
    )
    set_ = {
        "provider_user_id": stmt.excluded.provider_user_id,
        "provider_user_email": stmt.excluded.provider_user_email,
        "access_token": stmt.excluded.access_token,
        "refresh_token": func.coalesce(
            stmt.excluded.refresh_token, ConnectedAccountModel.refresh_token
        ),
        "expires_at": stmt.excluded.expires_at,
        "updated_at": func.now(),
    }
    if data.provider.is_single_account:
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "provider"],
            index_where=SINGLE_ACCOUNT_INDEX_WHERE,
            set_=set_,
        )
    else:
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "provider", "provider_user_id"],
            set_=set_,
        )
    return stmt.returning(ConnectedAccountModel)


class AccountRepository:
    """Async CRUD for connected accounts.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def upsert_account(
        self, user_id: str, data: ConnectedAccountUpsert
    ) -> ConnectedAccount:
        """Create or refresh the account for a completed OAuth callback."""
        async for session in self._session_factory():
            result = await session.execute(
                build_account_upsert(user_id, data),
                execution_options={"populate_existing": True},
            )
            model = result.scalar_one()
            await session.commit()
            logger.info(
                "accounts.connected",
                user_id=user_id,
                provider=data.provider.value,
                account_id=str(model.id),
            )
            return _model_to_account(model)

    async def list_accounts(
        self, user_id: str, provider: AccountProvider | None = None
    ) -> list[ConnectedAccount]:
        """List a user's accounts in creation order."""
        async for session in self._session_factory():
            stmt = select(ConnectedAccountModel).where(
                ConnectedAccountModel.user_id == user_id
            )
            if provider is not None:
                stmt = stmt.where(ConnectedAccountModel.provider == provider.value)
            stmt = stmt.order_by(ConnectedAccountModel.created_at)
            result = await session.execute(stmt)
            return [_model_to_account(m) for m in result.scalars().all()]

    async def get_account(
        self, user_id: str, provider: AccountProvider
    ) -> ConnectedAccount | None:
        """Get the first (for single-account providers, the only) account for a provider."""
        accounts = await self.list_accounts(user_id, provider)
        return accounts[0] if accounts else None

    async def update_tokens(
        self, account_id: uuid.UUID, grant: TokenGrant
    ) -> ConnectedAccount | None:
        """Persist refreshed tokens; keeps the stored refresh token if none was issued."""
        values: dict[str, Any] = {
            "access_token": grant.access_token,
            "expires_at": grant.expires_at,
        }
        if grant.refresh_token:
            values["refresh_token"] = grant.refresh_token

        async for session in self._session_factory():
            stmt = (
                update(ConnectedAccountModel)
                .where(ConnectedAccountModel.id == account_id)
                .values(**values)
                .returning(ConnectedAccountModel)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            await session.commit()
            return _model_to_account(model) if model is not None else None

    async def delete_account(self, user_id: str, account_id: uuid.UUID) -> bool:
        """Disconnect an account. Returns False if it does not belong to the user."""
        async for session in self._session_factory():
            stmt = delete(ConnectedAccountModel).where(
                ConnectedAccountModel.id == account_id,
                ConnectedAccountModel.user_id == user_id,
            )
            result = await session.execute(stmt)
            await session.commit()
            deleted = result.rowcount > 0
            if deleted:
                logger.info(
                    "accounts.disconnected",
                    user_id=user_id,
                    account_id=str(account_id),
                )
            return deleted
