"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.aftermeet.api.v1 import accounts, automations, health, jobs, meetings, publish

router = APIRouter()

router.include_router(health.router)
router.include_router(meetings.router, prefix="/api/v1")
router.include_router(automations.router, prefix="/api/v1")
router.include_router(accounts.router, prefix="/api/v1")
router.include_router(publish.router, prefix="/api/v1")
router.include_router(jobs.router, prefix="/api/v1")
