"""User-triggered publishing of generated content to social platforms."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.aftermeet.api.deps import get_current_user_id
from src.aftermeet.services.social.errors import PublishError, PublishErrorKind

router = APIRouter(prefix="/publish", tags=["publish"])

PUBLISH_ERROR_STATUS: dict[PublishErrorKind, int] = {
    PublishErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    PublishErrorKind.UNSUPPORTED_PLATFORM: status.HTTP_400_BAD_REQUEST,
    PublishErrorKind.NOT_CONNECTED: status.HTTP_404_NOT_FOUND,
    PublishErrorKind.RECONNECT_REQUIRED: status.HTTP_409_CONFLICT,
    PublishErrorKind.UNAUTHORIZED: status.HTTP_409_CONFLICT,
    PublishErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    PublishErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    PublishErrorKind.OTHER: status.HTTP_502_BAD_GATEWAY,
}


class PublishRequest(BaseModel):
    platform: str
    content: str


class PublishResponse(BaseModel):
    platform: str
    post_id: str


def _get_social_publisher(request: Request) -> Any:
    """Retrieve SocialPublisher from app.state, 503 if not available."""
    publisher = getattr(request.app.state, "social_publisher", None)
    if publisher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Social publisher not initialized",
        )
    return publisher


@router.post("", response_model=PublishResponse)
async def publish(
    body: PublishRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> PublishResponse | JSONResponse:
    """Post text to the caller's connected account on ``platform``.

    Not idempotent: each call creates a new post. Failures return
    ``{"error", "kind", "retryable"}`` with a status derived from the kind.
    """
    publisher = _get_social_publisher(request)
    try:
        result = await publisher.publish(user_id, body.platform, body.content)
    except PublishError as exc:
        return JSONResponse(
            status_code=PUBLISH_ERROR_STATUS[exc.kind],
            content=exc.to_dict(),
        )
    return PublishResponse(platform=result.platform, post_id=result.post_id)
