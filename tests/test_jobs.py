"""Tests for cron job endpoints and the periodic job runner."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.aftermeet.api.v1.router import router as v1_router
from src.aftermeet.config import get_settings
from src.aftermeet.meetings.jobs import PeriodicJob
from src.aftermeet.meetings.schemas import JobRunSummary

CRON_SECRET = "cron-test-secret"


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    get_settings.cache_clear()
    yield CRON_SECRET
    get_settings.cache_clear()


@pytest.fixture
def no_cron_secret(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _create_test_app(**state) -> FastAPI:
    app = FastAPI()
    app.include_router(v1_router)
    for name, value in state.items():
        setattr(app.state, name, value)
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def dispatcher():
    component = MagicMock()
    component.dispatch_due = AsyncMock(
        return_value=JobRunSummary(job="dispatch-bots", checked=2, succeeded=1, failed=1)
    )
    return component


@pytest.fixture
def poller():
    component = MagicMock()
    component.poll = AsyncMock(
        return_value=JobRunSummary(job="poll-transcripts", checked=1, succeeded=1)
    )
    return component


# ── Cron Endpoints ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_dispatch_endpoint_returns_run_summary(cron_secret, dispatcher, poller):
    app = _create_test_app(bot_dispatcher=dispatcher, transcript_poller=poller)

    async with _client(app) as client:
        response = await client.get(
            "/api/v1/jobs/dispatch-bots",
            headers={"Authorization": f"Bearer {cron_secret}"},
        )

    assert response.status_code == 200
    assert response.json() == {
        "job": "dispatch-bots",
        "checked": 2,
        "succeeded": 1,
        "failed": 1,
        "skipped": 0,
    }
    dispatcher.dispatch_due.assert_awaited_once()


@pytest.mark.asyncio
async def test_poll_endpoint_returns_run_summary(cron_secret, dispatcher, poller):
    app = _create_test_app(bot_dispatcher=dispatcher, transcript_poller=poller)

    async with _client(app) as client:
        response = await client.get(
            "/api/v1/jobs/poll-transcripts",
            headers={"Authorization": f"Bearer {cron_secret}"},
        )

    assert response.status_code == 200
    assert response.json()["succeeded"] == 1
    poller.poll.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer wrong-secret"}, {"Authorization": CRON_SECRET}],
)
async def test_wrong_or_missing_secret_is_401(cron_secret, dispatcher, headers):
    app = _create_test_app(bot_dispatcher=dispatcher)

    async with _client(app) as client:
        response = await client.get("/api/v1/jobs/dispatch-bots", headers=headers)

    assert response.status_code == 401
    dispatcher.dispatch_due.assert_not_called()


@pytest.mark.asyncio
async def test_unconfigured_secret_is_503(no_cron_secret, dispatcher):
    app = _create_test_app(bot_dispatcher=dispatcher)

    async with _client(app) as client:
        response = await client.get(
            "/api/v1/jobs/dispatch-bots", headers={"Authorization": "Bearer "}
        )

    assert response.status_code == 503
    dispatcher.dispatch_due.assert_not_called()


@pytest.mark.asyncio
async def test_job_without_recall_configured_is_503(cron_secret):
    app = _create_test_app()

    async with _client(app) as client:
        response = await client.get(
            "/api/v1/jobs/poll-transcripts",
            headers={"Authorization": f"Bearer {cron_secret}"},
        )

    assert response.status_code == 503


# ── PeriodicJob ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_once_returns_summary():
    summary = JobRunSummary(job="poll-transcripts", checked=3, succeeded=3)
    job = PeriodicJob("poll-transcripts", AsyncMock(return_value=summary), 60)

    assert await job.run_once() == summary


@pytest.mark.asyncio
async def test_run_once_logs_and_swallows_failure():
    failing = AsyncMock(side_effect=RuntimeError("database unavailable"))
    job = PeriodicJob("dispatch-bots", failing, 60)

    assert await job.run_once() is None
    failing.assert_awaited_once()


@pytest.mark.asyncio
async def test_poll_loop_stops_when_asked():
    runs = []

    async def job():
        runs.append(1)
        periodic.stop()
        return JobRunSummary(job="dispatch-bots")

    periodic = PeriodicJob("dispatch-bots", job, 0)

    await periodic.run_poll_loop()

    assert runs == [1]
