"""Connected account endpoints: list, disconnect, and OAuth connect flows.

The connect flow is a browser round-trip: ``authorize`` returns the
provider's consent URL with a signed ``state`` carrying the caller's user
id, and ``callback`` (hit by the provider redirect, so no session header)
recovers the user from that state, stores the tokens, and redirects back to
the frontend settings page.
"""

from __future__ import annotations

import uuid
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from src.aftermeet.accounts.schemas import (
    AccountProvider,
    ConnectedAccountPublic,
    ConnectedAccountUpsert,
)
from src.aftermeet.api.deps import get_current_user_id
from src.aftermeet.config import get_settings
from src.aftermeet.core.security import create_oauth_state, verify_oauth_state
from src.aftermeet.services.oauth import OAuthError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])

# Field of the provider's user-info response that identifies the account
PROVIDER_USER_ID_FIELDS: dict[AccountProvider, str] = {
    AccountProvider.GOOGLE: "id",
    AccountProvider.LINKEDIN: "sub",
}

_OAUTH_CLIENT_STATE = {
    AccountProvider.GOOGLE: "google_oauth",
    AccountProvider.LINKEDIN: "linkedin_client",
}


class AuthorizeResponse(BaseModel):
    url: str


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_account_repository(request: Request) -> Any:
    """Retrieve AccountRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "account_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account repository not initialized",
        )
    return repo


def _get_oauth_client(request: Request, provider: AccountProvider) -> Any:
    """Retrieve the provider's OAuth client from app.state, 503 if not configured."""
    client = getattr(request.app.state, _OAUTH_CLIENT_STATE[provider], None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{provider.value} OAuth not configured",
        )
    return client


def _settings_redirect(**params: str) -> RedirectResponse:
    settings = get_settings()
    url = f"{settings.FRONTEND_URL.rstrip('/')}/settings?{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[ConnectedAccountPublic])
async def list_accounts(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[ConnectedAccountPublic]:
    """List the caller's connected accounts (tokens are never returned)."""
    repo = _get_account_repository(request)
    accounts = await repo.list_accounts(user_id)
    return [ConnectedAccountPublic.from_account(a) for a in accounts]


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_account(
    account_id: uuid.UUID,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Response:
    repo = _get_account_repository(request)
    if not await repo.delete_account(user_id, account_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account not found: {account_id}",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{provider}/authorize", response_model=AuthorizeResponse)
async def authorize(
    provider: AccountProvider,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> AuthorizeResponse:
    """Consent URL for connecting a Google calendar or LinkedIn account."""
    client = _get_oauth_client(request, provider)
    state = create_oauth_state(user_id, provider.value)
    return AuthorizeResponse(url=client.authorization_url(state))


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: AccountProvider,
    request: Request,
    code: str | None = Query(default=None),
    state: str = Query(...),
    error: str | None = Query(default=None),
) -> RedirectResponse:
    """Complete the OAuth flow and redirect to the frontend settings page."""
    user_id = verify_oauth_state(state, provider.value)
    repo = _get_account_repository(request)
    client = _get_oauth_client(request, provider)

    if error or not code:
        logger.warning(
            "accounts.oauth_denied",
            user_id=user_id,
            provider=provider.value,
            error=error,
        )
        return _settings_redirect(error=provider.value)

    try:
        grant = await client.exchange_code(code)
        profile = await client.get_user_info(grant.access_token)
    except (OAuthError, httpx.HTTPError) as exc:
        logger.warning(
            "accounts.oauth_failed",
            user_id=user_id,
            provider=provider.value,
            error=str(exc),
        )
        return _settings_redirect(error=provider.value)

    provider_user_id = profile.get(PROVIDER_USER_ID_FIELDS[provider])
    if not provider_user_id:
        logger.warning(
            "accounts.oauth_missing_user_id",
            user_id=user_id,
            provider=provider.value,
        )
        return _settings_redirect(error=provider.value)

    await repo.upsert_account(
        user_id,
        ConnectedAccountUpsert(
            provider=provider,
            provider_user_id=str(provider_user_id),
            provider_user_email=profile.get("email"),
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
        ),
    )
    return _settings_redirect(connected=provider.value)
