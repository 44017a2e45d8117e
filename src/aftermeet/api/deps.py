"""FastAPI dependencies for the session user and cron authentication.

Endpoints receive the caller's user id explicitly through
``get_current_user_id`` and pass it down to every component call.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.aftermeet.config import get_settings
from src.aftermeet.core.security import verify_cron_secret, verify_token


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_user_id(request: Request) -> str:
    """Extract the session user id from the Bearer JWT.

    Raises:
        HTTPException(401): If no valid session token is provided.
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_token(token, token_type="access")
    return str(payload["sub"])


async def require_cron_secret(request: Request) -> None:
    """Guard for cron entry points: ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        HTTPException(503): If CRON_SECRET is not configured.
        HTTPException(401): If the header is missing or does not match.
    """
    settings = get_settings()
    if not settings.CRON_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron secret not configured",
        )
    token = _bearer_token(request)
    if token is None or not verify_cron_secret(token, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
