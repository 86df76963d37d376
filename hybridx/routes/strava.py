"""
HybridX API - Strava Routes.

Connect a Strava account, list recent activities, upload finished
workouts and link activities to workout sessions.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from hybridx.dependencies import get_current_user, get_session_service, get_strava_service, require_access
from hybridx.models.session import StravaActivity
from hybridx.models.user import User
from hybridx.schemas.workout import LinkStravaRequest, SessionResponse
from hybridx.services.sessions import SessionService
from hybridx.services.strava import StravaService


router = APIRouter()
logger = logging.getLogger(__name__)


class ExchangeRequest(BaseModel):
    code: str
    state: str


class UploadRequest(BaseModel):
    session_id: str
    timezone: Optional[str] = None  # IANA name, e.g. "Europe/London"


@router.get("/connect")
async def get_connect_url(
    user: User = Depends(get_current_user),
    strava: StravaService = Depends(get_strava_service),
) -> dict:
    """URL that starts the Strava authorization flow."""
    return {"authorization_url": await strava.get_authorization_url(user.id)}


@router.post("/exchange")
async def exchange_code(
    request: ExchangeRequest,
    user: User = Depends(get_current_user),
    strava: StravaService = Depends(get_strava_service),
) -> dict:
    tokens = await strava.exchange_code(user.id, request.code, request.state)
    return {"connected": True, "athlete_id": tokens.athlete_id}


@router.delete("/connection")
async def disconnect(
    user: User = Depends(get_current_user),
    strava: StravaService = Depends(get_strava_service),
) -> dict:
    await strava.disconnect(user.id)
    logger.info(f"User {user.id} disconnected Strava")
    return {"connected": False}


@router.get("/activities", response_model=List[StravaActivity])
async def list_activities(
    per_page: int = Query(default=30, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    user: User = Depends(require_access),
    strava: StravaService = Depends(get_strava_service),
) -> List[StravaActivity]:
    return await strava.list_activities(user, per_page=per_page, page=page)


@router.post("/upload", response_model=SessionResponse)
async def upload_session(
    request: UploadRequest,
    user: User = Depends(require_access),
    strava: StravaService = Depends(get_strava_service),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Post a finished workout to Strava as a manual activity."""
    session = await service.get_owned_session(user.id, request.session_id)
    strava_id = await strava.upload_session(user, session, request.timezone)
    session = await service.mark_uploaded_to_strava(user.id, session.id, strava_id)
    return SessionResponse.from_session(session)


@router.post("/link", response_model=SessionResponse)
async def link_activity(
    request: LinkStravaRequest,
    user: User = Depends(require_access),
    strava: StravaService = Depends(get_strava_service),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Mark a session completed with a Strava activity; linking twice is harmless."""
    activity = await strava.get_activity(user, request.activity_id)
    session = await service.link_strava_activity_to_session(user.id, activity, session_id=request.session_id)
    return SessionResponse.from_session(session)
