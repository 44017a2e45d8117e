"""CRUD endpoints for the caller's content automations.

Field validation (name, platform, prompt length) happens in AutomationCreate
and is reported by FastAPI as a 422 with per-field messages.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from src.aftermeet.api.deps import get_current_user_id
from src.aftermeet.content.schemas import Automation, AutomationCreate

router = APIRouter(prefix="/automations", tags=["automations"])


def _get_automation_repository(request: Request) -> Any:
    """Retrieve AutomationRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "automation_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Automation repository not initialized",
        )
    return repo


def _not_found(automation_id: uuid.UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Automation not found: {automation_id}",
    )


@router.get("", response_model=list[Automation])
async def list_automations(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> list[Automation]:
    repo = _get_automation_repository(request)
    return await repo.list_automations(user_id)


@router.post("", response_model=Automation, status_code=status.HTTP_201_CREATED)
async def create_automation(
    body: AutomationCreate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Automation:
    repo = _get_automation_repository(request)
    return await repo.create_automation(user_id, body)


@router.put("/{automation_id}", response_model=Automation)
async def update_automation(
    automation_id: uuid.UUID,
    body: AutomationCreate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Automation:
    """Replace an automation's fields. 404 if it does not belong to the caller."""
    repo = _get_automation_repository(request)
    automation = await repo.update_automation(user_id, automation_id, body)
    if automation is None:
        raise _not_found(automation_id)
    return automation


@router.delete("/{automation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_automation(
    automation_id: uuid.UUID,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> Response:
    repo = _get_automation_repository(request)
    if not await repo.delete_automation(user_id, automation_id):
        raise _not_found(automation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
