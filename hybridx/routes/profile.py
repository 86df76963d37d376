"""
HybridX API - Profile Routes.

Endpoints for the user's profile and program schedule.
"""

import logging

from fastapi import APIRouter, Depends

from hybridx.dependencies import get_current_user, get_program_repository, get_user_repository
from hybridx.models.user import User
from hybridx.repositories.base import ProgramRepository, UserRepository
from hybridx.schemas.profile import ProfileResponse, ProfileUpdateRequest, ScheduleRequest
from hybridx.services.paces import calculate_training_paces
from hybridx.utils.errors import NotFoundError


router = APIRouter()
logger = logging.getLogger(__name__)


def _profile(user: User) -> ProfileResponse:
    paces = calculate_training_paces(user.running_profile.benchmark_paces, user.experience)
    return ProfileResponse.from_user(user, training_paces=paces)


@router.get("/me", response_model=ProfileResponse)
async def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    """
    Get current user's profile, including training paces derived from
    their benchmark race times.
    """
    return _profile(user)


@router.put("/me", response_model=ProfileResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> ProfileResponse:
    """Update provided profile fields only."""
    fields = {
        name: getattr(request, name)
        for name in request.model_fields_set
        if getattr(request, name) is not None
    }
    if fields:
        await users.update_fields(user.id, **fields)
        user = user.model_copy(update=fields)
    return _profile(user)


@router.put("/me/schedule", response_model=ProfileResponse)
async def set_schedule(
    request: ScheduleRequest,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    programs: ProgramRepository = Depends(get_program_repository),
) -> ProfileResponse:
    """
    Assign a program with its start date, or clear both.

    Raises:
        NotFoundError: program does not exist and no custom program is given.
    """
    if request.program_id and not request.custom_program:
        if await programs.get(request.program_id) is None:
            raise NotFoundError("Program not found")

    fields = {
        "program_id": request.program_id,
        "start_date": request.start_date,
        "custom_program": request.custom_program if request.program_id else None,
    }
    await users.update_fields(user.id, **fields)
    logger.info(f"User {user.id} schedule set to program {request.program_id} from {request.start_date}")
    return _profile(user.model_copy(update=fields))
