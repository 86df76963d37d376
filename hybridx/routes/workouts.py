# hybridx/routes/workouts.py
"""HybridX API - Workout Routes.

Today's workout, the program calendar and everything done to a session.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from hybridx.dependencies import get_adjustment_service, get_session_service, require_access
from hybridx.models.user import User
from hybridx.models.workout import WeekAnalysis
from hybridx.schemas.workout import (
    AnalyzeWeekRequest,
    ApplyAdjustmentsRequest,
    ApplyAdjustmentsResponse,
    CalendarDayResponse,
    CustomWorkoutRequest,
    FinishRequest,
    NotesRequest,
    OneOffWorkoutRequest,
    SessionResponse,
    StreakResponse,
    SwapRequest,
    TodayResponse,
    ToggleItemRequest,
)
from hybridx.services.adjustments import AdjustmentService
from hybridx.services.calendar import build_calendar, is_rest_day
from hybridx.services.gemini import GeminiService, get_gemini_service
from hybridx.services.sessions import SessionService
from hybridx.services.streaks import calculate_streak_data
from hybridx.utils.errors import ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


async def _session_response(
    service: SessionService,
    user: User,
    session_id: str,
) -> SessionResponse:
    session = await service.get_owned_session(user.id, session_id)
    program = await service.load_user_program(user) if not session.has_override else None
    _, workout = await service.displayed_workout_for_date(user, session.workout_date, program)
    return SessionResponse.from_session(session, workout)


@router.get("/today", response_model=TodayResponse)
async def get_todays_workout(
    on: Optional[date] = Query(default=None, description="Client's local date, defaults to server date"),
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> TodayResponse:
    """Resolve the workout for today and create its session when one is scheduled."""
    today = on or date.today()
    resolved = await service.resolve_todays_workout(user, today)
    return TodayResponse.build(today, resolved, is_rest_day(resolved.workout))


@router.get("/calendar", response_model=List[CalendarDayResponse])
async def get_calendar(
    days: int = Query(default=365, ge=1, le=730),
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> List[CalendarDayResponse]:
    program = await service.load_user_program(user)
    if program is None:
        return []
    sessions = await service.list_user_sessions(user.id)
    calendar = build_calendar(program, user.start_date, sessions, days=days)
    return [CalendarDayResponse.from_day(day) for day in calendar]


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> List[SessionResponse]:
    """Workout history, newest first."""
    sessions = await service.list_user_sessions(user.id)
    return [SessionResponse.from_session(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    return await _session_response(service, user, session_id)


@router.get("/stats", response_model=StreakResponse)
async def get_stats(
    on: Optional[date] = Query(default=None),
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> StreakResponse:
    sessions = await service.list_user_sessions(user.id)
    return StreakResponse(**calculate_streak_data(sessions, today=on).to_dict())


@router.post("/custom", response_model=SessionResponse)
async def create_custom_workout(
    request: CustomWorkoutRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Log a custom workout for a date (today by default)."""
    session = await service.create_custom_workout(
        user.id,
        request.workout_date or date.today(),
        title=request.title,
        program_type=request.program_type,
        description=request.description,
        duration=request.duration,
    )
    logger.info(f"Custom workout session {session.id} created for user {user.id}")
    return SessionResponse.from_session(session)


@router.post("/one-off", response_model=SessionResponse)
async def create_one_off_workout(
    request: OneOffWorkoutRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
    gemini: GeminiService = Depends(get_gemini_service),
) -> SessionResponse:
    """Generate an AI workout and make it the session for the date."""
    workout = await gemini.generate_workout(user.first_name, user.experience)
    session = await service.create_one_off_workout(user.id, request.workout_date or date.today(), workout)
    return SessionResponse.from_session(session)


@router.post("/sessions/{session_id}/items", response_model=SessionResponse)
async def toggle_item(
    session_id: str,
    request: ToggleItemRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    await service.toggle_item(user.id, session_id, request.item, request.completed)
    return await _session_response(service, user, session_id)


@router.post("/sessions/{session_id}/notes/autosave", status_code=202)
async def autosave_notes(
    session_id: str,
    request: NotesRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> dict:
    """Queue notes; they are written once typing pauses."""
    await service.autosave_notes(user.id, session_id, request.notes)
    return {"queued": True}


@router.put("/sessions/{session_id}/notes", response_model=SessionResponse)
async def save_notes(
    session_id: str,
    request: NotesRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    await service.save_notes(user.id, session_id, request.notes)
    return await _session_response(service, user, session_id)


@router.post("/sessions/{session_id}/finish", response_model=SessionResponse)
async def finish_workout(
    session_id: str,
    request: FinishRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    await service.finish_workout(user.id, session_id, notes=request.notes)
    return await _session_response(service, user, session_id)


@router.post("/sessions/{session_id}/skip", response_model=SessionResponse)
async def skip_workout(
    session_id: str,
    request: FinishRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    await service.skip_workout(user.id, session_id, notes=request.notes)
    return await _session_response(service, user, session_id)


@router.post("/sessions/{session_id}/extend", response_model=SessionResponse)
async def extend_workout(
    session_id: str,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
    gemini: GeminiService = Depends(get_gemini_service),
) -> SessionResponse:
    """Append AI-suggested exercises to an unfinished session."""
    current = await _session_response(service, user, session_id)
    if current.workout is None:
        raise ValidationError("Nothing is scheduled for this session")
    exercises = await gemini.extend_workout(current.workout)
    await service.extend_workout(user.id, session_id, exercises)
    return await _session_response(service, user, session_id)


@router.post("/swap", response_model=List[SessionResponse])
async def swap_workouts(
    request: SwapRequest,
    user: User = Depends(require_access),
    service: SessionService = Depends(get_session_service),
) -> List[SessionResponse]:
    """Exchange the workouts shown on two dates. The program itself is unchanged."""
    first, second = await service.swap_scheduled_workouts(user, request.date1, request.date2)
    return [SessionResponse.from_session(first), SessionResponse.from_session(second)]


@router.post("/analyze-week", response_model=WeekAnalysis)
async def analyze_week(
    request: AnalyzeWeekRequest,
    user: User = Depends(require_access),
    adjustments: AdjustmentService = Depends(get_adjustment_service),
    gemini: GeminiService = Depends(get_gemini_service),
) -> WeekAnalysis:
    """Review recent sessions and suggest changes to the coming week. Nothing is saved."""
    return await adjustments.analyze_week(
        user, gemini, request.on or date.today(), custom_request=request.custom_request
    )


@router.post("/apply-adjustments", response_model=ApplyAdjustmentsResponse)
async def apply_adjustments(
    request: ApplyAdjustmentsRequest,
    user: User = Depends(require_access),
    adjustments: AdjustmentService = Depends(get_adjustment_service),
) -> ApplyAdjustmentsResponse:
    """Save accepted adjustments to the user's personalized program."""
    result = await adjustments.apply(user, request.adjustments)
    return ApplyAdjustmentsResponse(
        adjustments_applied=result.applied,
        message=f"Applied {result.applied} adjustment(s) to your personalized program",
        custom_program=result.custom_program,
    )
