"""structlog setup and the per-request access log.

The request id (incoming X-Request-ID or a fresh UUID) and the session user
are bound into structlog's context variables for the duration of a request,
so every log event emitted by a route, repository, or Recall/LLM call made
on its behalf carries them too. The id is echoed on the response.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.aftermeet.config import Environment, get_settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_structlog() -> None:
    """Configure structlog for the API process and the job script.

    JSON lines in production, coloured console output elsewhere. The stdlib
    root logger level follows LOG_LEVEL so library loggers (httpx, litellm,
    sqlalchemy) are filtered the same way.
    """
    settings = get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _session_user_id(request: Request) -> str | None:
    """Best-effort ``sub`` of a Bearer session token, for log context only."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    settings = get_settings()
    try:
        claims = jwt.decode(
            auth_header.removeprefix("Bearer "),
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        # Cron secrets and bad tokens are not sessions
        return None
    if claims.get("type") != "access":
        return None
    return claims.get("sub")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with request id propagation."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        user_id = _session_user_id(request)
        structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)
        started = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http.request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "user_id")

        response.headers[REQUEST_ID_HEADER] = request_id

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "http.request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
            request_id=request_id,
            user_id=user_id,
        )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)
