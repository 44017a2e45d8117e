"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan wiring of the meeting pipeline onto app.state, optional background
job loops, and the v1 API router.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.aftermeet.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.aftermeet.api.v1.router import router as v1_router
from src.aftermeet.config import get_settings
from src.aftermeet.core.database import close_db, init_db
from src.aftermeet.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire components on startup, stop loops and close DB on shutdown."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Credential store and OAuth clients ───────────────────────────────
    from src.aftermeet.accounts.repository import AccountRepository
    from src.aftermeet.core.database import get_session

    account_repo = AccountRepository(session_factory=get_session)
    app.state.account_repository = account_repo

    try:
        from src.aftermeet.meetings.calendar.sync import CalendarSync
        from src.aftermeet.services.google import GoogleCalendarClient, GoogleOAuthClient

        if settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
            google_oauth = GoogleOAuthClient(
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
                redirect_uri=settings.GOOGLE_REDIRECT_URI,
            )
            app.state.google_oauth = google_oauth
            app.state.calendar_sync = CalendarSync(
                account_repository=account_repo,
                oauth_client=google_oauth,
                calendar_client=GoogleCalendarClient(),
                max_results=settings.CALENDAR_MAX_RESULTS,
            )
            log.info("startup.google_initialized")
        else:
            log.warning("startup.google_not_configured")
            app.state.google_oauth = None
            app.state.calendar_sync = None
    except Exception:
        log.warning("startup.google_init_failed", exc_info=True)
        app.state.google_oauth = None
        app.state.calendar_sync = None

    # ── Social publishing ────────────────────────────────────────────────
    try:
        from src.aftermeet.services.social.linkedin import LinkedInClient
        from src.aftermeet.services.social.publisher import SocialPublisher

        clients = {}
        if settings.LINKEDIN_CLIENT_ID and settings.LINKEDIN_CLIENT_SECRET:
            linkedin = LinkedInClient(
                client_id=settings.LINKEDIN_CLIENT_ID,
                client_secret=settings.LINKEDIN_CLIENT_SECRET,
                redirect_uri=settings.LINKEDIN_REDIRECT_URI,
            )
            clients[linkedin.platform] = linkedin
            app.state.linkedin_client = linkedin
        else:
            log.warning("startup.linkedin_not_configured")
            app.state.linkedin_client = None
        app.state.social_publisher = SocialPublisher(
            account_repository=account_repo, clients=clients
        )
    except Exception:
        log.warning("startup.publisher_init_failed", exc_info=True)
        app.state.linkedin_client = None
        app.state.social_publisher = None

    # ── Meeting lifecycle pipeline ───────────────────────────────────────
    app.state.job_loops = []
    app.state.job_tasks = []
    try:
        from src.aftermeet.meetings.jobs import PeriodicJob, build_pipeline
        from src.aftermeet.meetings.service import MeetingService

        pipeline = build_pipeline(settings)
        app.state.meeting_repository = pipeline.meeting_repository
        app.state.automation_repository = pipeline.automation_repository
        app.state.content_repository = pipeline.content_repository
        app.state.content_generator = pipeline.content_generator
        app.state.bot_dispatcher = pipeline.dispatcher
        app.state.transcript_poller = pipeline.poller
        app.state.meeting_service = MeetingService(
            repository=pipeline.meeting_repository,
            dispatcher=pipeline.dispatcher,
        )

        if settings.BACKGROUND_JOBS_ENABLED and pipeline.dispatcher and pipeline.poller:
            loops = [
                PeriodicJob(
                    "dispatch-bots",
                    pipeline.dispatcher.dispatch_due,
                    settings.DISPATCH_INTERVAL_SECONDS,
                ),
                PeriodicJob(
                    "poll-transcripts",
                    pipeline.poller.poll,
                    settings.POLL_INTERVAL_SECONDS,
                ),
            ]
            app.state.job_loops = loops
            app.state.job_tasks = [
                asyncio.create_task(loop.run_poll_loop(), name=f"job_{loop.name}")
                for loop in loops
            ]
            log.info("startup.background_jobs_started", jobs=[loop.name for loop in loops])

        log.info("startup.pipeline_initialized", recall_enabled=pipeline.dispatcher is not None)
    except Exception as exc:
        log.warning("startup.pipeline_init_failed", error=str(exc), exc_info=True)
        app.state.meeting_repository = None
        app.state.automation_repository = None
        app.state.content_repository = None
        app.state.content_generator = None
        app.state.bot_dispatcher = None
        app.state.transcript_poller = None
        app.state.meeting_service = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    for loop in app.state.job_loops:
        loop.stop()
    for task in app.state.job_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    if app.state.job_tasks:
        log.info("shutdown.background_jobs_stopped")

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Aftermeet API",
        version="0.1.0",
        description="Meeting recording, transcript, and follow-up content pipeline",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
