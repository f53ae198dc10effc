# mindmate/app/routes_dashboard.py
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta, timezone
from typing import Any, Dict, Literal, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mindmate.app.deps import AppServices, get_current_user, get_services
from mindmate.domain.models import UserIdentity
from mindmate.exceptions import ChatInputError, PersistenceError

logger = logging.getLogger(__name__)
router = APIRouter()

# ---------------------------
# Request schemas
# ---------------------------


class MoodRequest(BaseModel):
    emoji: str = Field(..., description="Selected mood emoji, e.g. 😊")
    mood_name: str = Field(..., description="Mood label, e.g. Happy")


# ---------------------------
# Response schemas
# ---------------------------


class DashboardResponse(BaseModel):
    status: Literal["ok"] = "ok"
    dashboard: Dict[str, Any]


class MoodResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str


class DashboardErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    error_type: str
    message: str


# ---------------------------
# Routes
# ---------------------------


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    tz_offset_minutes: int = Query(0, ge=-14 * 60, le=14 * 60, description="Client UTC offset in minutes"),
    user: UserIdentity = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    """
    Dashboard page data.

    - day boundaries (greeting, streak, weekly window) follow the client's offset
    - a failed read shows up as an empty region, never as an error
    """
    service = services.dashboard
    now = service.clock().astimezone(timezone(timedelta(minutes=tz_offset_minutes)))
    data = await service.load(user, now=now)
    return DashboardResponse(dashboard=data)


@router.post("/mood", response_model=Union[MoodResponse, DashboardErrorResponse])
async def log_mood(
    req: MoodRequest,
    user: UserIdentity = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    try:
        await asyncio.to_thread(services.dashboard.save_mood, user, req.emoji, req.mood_name)
    except ChatInputError as e:
        return DashboardErrorResponse(error_type="input_error", message=str(e))
    except PersistenceError as e:
        logger.error("Mood not saved (user_id=%s): %s", user.id, e)
        return DashboardErrorResponse(error_type="persistence_error", message="Failed to log mood")

    return MoodResponse(message=f"Mood logged: {req.emoji} {req.mood_name}")
