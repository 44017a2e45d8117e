"""Prometheus metrics and Sentry setup.

Metrics exposed on /metrics:
- HTTP traffic per route template (MetricsMiddleware)
- Bot dispatch outcomes per platform and transcript poll outcomes
- LLM calls and token usage per model group and content kind
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Paths that are scraped or probed too often to be worth counting
UNTRACKED_PATHS = frozenset({"/metrics", "/health"})

# ── Pipeline ─────────────────────────────────────────────────────────────────

bots_dispatched_total = Counter(
    "aftermeet_bots_dispatched_total",
    "Recall.ai bot creation attempts",
    ["platform", "outcome"],
)

meetings_processed_total = Counter(
    "aftermeet_meetings_processed_total",
    "Transcript poller outcomes per claimed meeting",
    ["outcome"],
)

# ── LLM ──────────────────────────────────────────────────────────────────────

llm_calls_total = Counter(
    "aftermeet_llm_calls_total",
    "Content generation calls to the LLM router",
    ["model_group", "content_kind", "status"],
)

llm_call_seconds = Histogram(
    "aftermeet_llm_call_seconds",
    "Latency of a content generation call",
    ["model_group", "content_kind"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0, 120.0),
)

llm_tokens_total = Counter(
    "aftermeet_llm_tokens_total",
    "Tokens consumed by content generation",
    ["model_group", "direction"],
)

# ── HTTP ─────────────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "aftermeet_http_requests_total",
    "API requests",
    ["method", "route", "status_code"],
)

http_request_seconds = Histogram(
    "aftermeet_http_request_seconds",
    "API request latency",
    ["method", "route"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests by route template rather than raw path."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        route = getattr(request.scope.get("route"), "path", "unmatched")
        http_requests_total.labels(request.method, route, str(response.status_code)).inc()
        http_request_seconds.labels(request.method, route).observe(elapsed)
        return response


@asynccontextmanager
async def track_llm_call(
    model_group: str, content_kind: str
) -> AsyncGenerator[dict[str, Any], None]:
    """Time one LLM call and record its token usage.

    The caller fills ``prompt_tokens`` / ``completion_tokens`` on the yielded
    dict once the response arrives::

        async with track_llm_call("content", "email") as usage:
            response = await router.acompletion(...)
            usage["prompt_tokens"] = response.usage.prompt_tokens
    """
    usage: dict[str, Any] = {"prompt_tokens": 0, "completion_tokens": 0}
    started = time.perf_counter()
    status = "ok"
    try:
        yield usage
    except Exception:
        status = "error"
        raise
    finally:
        llm_calls_total.labels(model_group, content_kind, status).inc()
        llm_call_seconds.labels(model_group, content_kind).observe(time.perf_counter() - started)
        for direction in ("prompt", "completion"):
            count = usage.get(f"{direction}_tokens") or 0
            if count:
                llm_tokens_total.labels(model_group, direction).inc(count)


def _drop_credentials(event: dict, hint: dict) -> dict:
    """Strip bearer tokens and cookies from events before they leave the process."""
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in ("authorization", "cookie"):
                headers[name] = "[redacted]"
    return event


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry error reporting.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1 if environment == "production" else 1.0,
        send_default_pii=False,
        before_send=_drop_credentials,
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )


def get_metrics_response() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
