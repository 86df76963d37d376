"""
HybridX API - FastAPI Dependencies.

Dependency injection helpers for routes.
"""

from typing import Any, Dict

from fastapi import Depends, HTTPException, status

from hybridx.middleware.auth import jwt_bearer
from hybridx.models.user import User
from hybridx.repositories.base import ProgramRepository, SessionRepository, UserRepository
from hybridx.repositories.mongo import (
    MongoProgramRepository,
    MongoSessionRepository,
    MongoUserRepository,
)
from hybridx.services.adjustments import AdjustmentService
from hybridx.services.autosave import NotesAutosaveRegistry, get_notes_autosave
from hybridx.services.sessions import SessionService
from hybridx.services.strava import StravaService
from hybridx.services.subscription_status import SubscriptionStatus, has_access, status_for_user
from hybridx.utils.dates import utc_now
from hybridx.utils.errors import ConflictError, ForbiddenError


async def get_token_claims(
    claims: Dict[str, Any] = Depends(jwt_bearer)
) -> Dict[str, Any]:
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return claims


async def get_current_user_id(
    claims: Dict[str, Any] = Depends(get_token_claims)
) -> str:
    """
    Get current authenticated user ID (the token's ``sub`` claim).

    Usage:
        @router.get("/protected")
        async def protected_route(user_id: str = Depends(get_current_user_id)):
            return {"user_id": user_id}
    """
    return claims["sub"]


def get_session_repository() -> SessionRepository:
    return MongoSessionRepository()


def get_program_repository() -> ProgramRepository:
    return MongoProgramRepository()


def get_user_repository() -> UserRepository:
    return MongoUserRepository()


def get_autosave_registry() -> NotesAutosaveRegistry:
    return get_notes_autosave()


def get_session_service(
    sessions: SessionRepository = Depends(get_session_repository),
    programs: ProgramRepository = Depends(get_program_repository),
    autosave: NotesAutosaveRegistry = Depends(get_autosave_registry),
) -> SessionService:
    return SessionService(sessions, programs, autosave=autosave)


def get_adjustment_service(
    users: UserRepository = Depends(get_user_repository),
    programs: ProgramRepository = Depends(get_program_repository),
    sessions: SessionRepository = Depends(get_session_repository),
) -> AdjustmentService:
    return AdjustmentService(users, programs, sessions)


def get_strava_service(users: UserRepository = Depends(get_user_repository)) -> StravaService:
    return StravaService(users)


async def get_current_user(
    claims: Dict[str, Any] = Depends(get_token_claims),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    """
    Get the current user, creating the record on first sight.

    New users start a free trial immediately.
    """
    user_id = claims["sub"]
    user = await users.get(user_id)
    if user is not None:
        return user

    new_user = User(
        id=user_id,
        email=claims.get("email", ""),
        first_name=claims.get("given_name", ""),
        last_name=claims.get("family_name", ""),
        subscription_status=SubscriptionStatus.TRIAL.value,
        trial_start_date=utc_now(),
    )
    try:
        return await users.create(new_user)
    except ConflictError:
        # Created by a concurrent request
        return await users.get(user_id)


async def require_access(user: User = Depends(get_current_user)) -> User:
    """
    Dependency that requires an active subscription or a running trial.

    Raises:
        ForbiddenError: subscription status does not grant access.
    """
    resolved = status_for_user(user)
    if not has_access(resolved):
        raise ForbiddenError(
            "An active subscription is required",
            detail=f"Subscription status: {resolved.value}"
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
