"""
HybridX API - MongoDB repositories.

Beanie-backed implementations of the repository interfaces. Driver errors
are translated into ``PersistenceError`` / ``ConflictError`` here so the
services never see pymongo exceptions.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId
from beanie.operators import In, Set
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError, PyMongoError

from hybridx.models.mongodb import ProgramDocument, UserDocument, WorkoutSessionDocument
from hybridx.models.session import (
    ONE_OFF_KINDS,
    SessionOrigin,
    StravaActivitySummary,
    WorkoutSession,
)
from hybridx.models.user import RunningProfile, StravaTokens, User
from hybridx.models.workout import Exercise, Program, WorkoutSnapshot, parse_workouts
from hybridx.repositories.base import ProgramRepository, SessionRepository, UserRepository
from hybridx.utils.dates import as_utc, day_start
from hybridx.utils.errors import ConflictError, PersistenceError
from hybridx.utils.security import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)


@asynccontextmanager
async def translate_store_errors(action: str):
    """Turn driver failures into application errors."""
    try:
        yield
    except DuplicateKeyError as e:
        raise ConflictError(f"Duplicate document while trying to {action}", detail=str(e)) from e
    except PyMongoError as e:
        logger.error(f"MongoDB failure while trying to {action}: {e}")
        raise PersistenceError(detail=f"Failed to {action}") from e


def _object_id(value: str) -> Optional[PydanticObjectId]:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        return None


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Workout sessions
# ---------------------------------------------------------------------------

def _snapshot_from_storage(raw: Optional[Dict[str, Any]]) -> Optional[WorkoutSnapshot]:
    if raw is None:
        return None
    # Older documents stored the workout itself rather than the wrapper
    if "workout" not in raw:
        raw = {"workout": raw}
    return WorkoutSnapshot.model_validate(raw)


def session_from_document(doc: WorkoutSessionDocument) -> WorkoutSession:
    return WorkoutSession(
        id=str(doc.id),
        user_id=doc.user_id,
        origin=SessionOrigin.parse(doc.program_id),
        workout_date=doc.workout_date.date(),
        workout_title=doc.workout_title or "Workout",
        program_type=doc.program_type or "hyrox",
        started_at=as_utc(doc.started_at),
        finished_at=as_utc(doc.finished_at),
        skipped=doc.skipped,
        completed_items=doc.completed_items or {},
        notes=doc.notes or "",
        duration=doc.duration,
        extended_exercises=[Exercise.model_validate(e) for e in doc.extended_exercises or []],
        workout_details=_snapshot_from_storage(doc.workout_details),
        strava_id=doc.strava_id,
        uploaded_to_strava=doc.uploaded_to_strava,
        strava_uploaded_at=as_utc(doc.strava_uploaded_at),
        strava_activity=(
            StravaActivitySummary.model_validate(doc.strava_activity)
            if doc.strava_activity else None
        ),
    )


def session_fields_to_storage(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Map domain field values onto document field values."""
    stored: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "origin":
            stored["program_id"] = value.stored_value
        elif name == "workout_date":
            stored["workout_date"] = day_start(value)
        else:
            stored[name] = _dump(value)
    return stored


class MongoSessionRepository(SessionRepository):
    """Workout sessions in the ``workoutSessions`` collection."""

    async def get(self, session_id: str) -> Optional[WorkoutSession]:
        oid = _object_id(session_id)
        if oid is None:
            return None
        async with translate_store_errors("load workout session"):
            doc = await WorkoutSessionDocument.get(oid)
        return session_from_document(doc) if doc else None

    async def find_for_date(self, user_id, workout_date):
        async with translate_store_errors("load workout session"):
            doc = await WorkoutSessionDocument.find_one(
                WorkoutSessionDocument.user_id == user_id,
                WorkoutSessionDocument.workout_date == day_start(workout_date),
            )
        return session_from_document(doc) if doc else None

    async def find_one_off_for_date(self, user_id, workout_date):
        async with translate_store_errors("load workout session"):
            doc = await WorkoutSessionDocument.find_one(
                WorkoutSessionDocument.user_id == user_id,
                WorkoutSessionDocument.workout_date == day_start(workout_date),
                In(WorkoutSessionDocument.program_id, [kind.value for kind in ONE_OFF_KINDS]),
            )
        return session_from_document(doc) if doc else None

    async def list_for_user(self, user_id):
        async with translate_store_errors("load workout history"):
            docs = await WorkoutSessionDocument.find(
                WorkoutSessionDocument.user_id == user_id
            ).sort(-WorkoutSessionDocument.workout_date).to_list()
        return [session_from_document(doc) for doc in docs]

    async def insert(self, session):
        data = session.model_dump(exclude={"id", "origin", "workout_date"})
        data.update(session_fields_to_storage({
            "origin": session.origin,
            "workout_date": session.workout_date,
        }))
        doc = WorkoutSessionDocument(**data)
        async with translate_store_errors("create workout session"):
            await doc.insert()
        return session.model_copy(update={"id": str(doc.id)})

    async def replace(self, session):
        fields = session.model_dump(exclude={"id"})
        fields["origin"] = session.origin
        matched = await self._set_fields(session.id, fields)
        if not matched:
            # Deleted since it was read
            raise PersistenceError(detail=f"Workout session {session.id} no longer exists")
        return session

    async def update_fields(self, session_id, **fields):
        await self._set_fields(session_id, fields)

    async def _set_fields(self, session_id: str, fields: Dict[str, Any]) -> int:
        """Apply a $set to one session; returns the matched count."""
        oid = _object_id(session_id)
        if oid is None:
            raise PersistenceError(detail=f"Invalid session id {session_id}")
        async with translate_store_errors("update workout session"):
            result = await WorkoutSessionDocument.find_one(
                WorkoutSessionDocument.id == oid
            ).update(Set(session_fields_to_storage(fields)))
        return result.matched_count

    async def delete(self, session_id):
        oid = _object_id(session_id)
        if oid is None:
            return
        async with translate_store_errors("delete workout session"):
            await WorkoutSessionDocument.find_one(WorkoutSessionDocument.id == oid).delete()


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

def program_from_document(doc: ProgramDocument) -> Program:
    return Program.from_raw(
        doc.workouts,
        id=str(doc.id),
        name=doc.name,
        description=doc.description,
        program_type=doc.program_type if doc.program_type in ("hyrox", "running") else "hyrox",
    )


class MongoProgramRepository(ProgramRepository):
    """Programs in the ``programs`` collection."""

    async def get(self, program_id):
        oid = _object_id(program_id)
        if oid is None:
            return None
        async with translate_store_errors("load program"):
            doc = await ProgramDocument.get(oid)
        return program_from_document(doc) if doc else None

    async def list_all(self):
        async with translate_store_errors("load programs"):
            docs = await ProgramDocument.find_all().to_list()
        return [program_from_document(doc) for doc in docs]

    async def create(self, program):
        doc = ProgramDocument(
            name=program.name,
            description=program.description,
            program_type=program.program_type,
            workouts=_dump(program.workouts),
        )
        async with translate_store_errors("create program"):
            await doc.insert()
        return program.model_copy(update={"id": str(doc.id)})

    async def update(self, program):
        oid = _object_id(program.id)
        if oid is None:
            raise PersistenceError(detail=f"Invalid program id {program.id}")
        async with translate_store_errors("update program"):
            await ProgramDocument.find_one(ProgramDocument.id == oid).update(Set({
                "name": program.name,
                "description": program.description,
                "program_type": program.program_type,
                "workouts": _dump(program.workouts),
                "updated_at": datetime.utcnow(),
            }))
        return program

    async def delete(self, program_id):
        oid = _object_id(program_id)
        if oid is None:
            return
        # Sessions keep their own copy of workout content, nothing cascades
        async with translate_store_errors("delete program"):
            await ProgramDocument.find_one(ProgramDocument.id == oid).delete()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def _strava_from_storage(raw: Optional[Dict[str, Any]]) -> Optional[StravaTokens]:
    if not raw:
        return None
    return StravaTokens(
        access_token=decrypt_token(raw["access_token"]),
        refresh_token=decrypt_token(raw["refresh_token"]),
        expires_at=as_utc(raw["expires_at"]),
        scope=raw.get("scope", ""),
        athlete_id=raw.get("athlete_id"),
    )


def _strava_to_storage(tokens: Optional[StravaTokens]) -> Optional[Dict[str, Any]]:
    if tokens is None:
        return None
    return {
        "access_token": encrypt_token(tokens.access_token),
        "refresh_token": encrypt_token(tokens.refresh_token),
        "expires_at": tokens.expires_at,
        "scope": tokens.scope,
        "athlete_id": tokens.athlete_id,
    }


def user_from_document(doc: UserDocument) -> User:
    program_id, start_date = doc.program_id, doc.start_date
    if bool(program_id) != (start_date is not None):
        logger.warning(f"User {doc.uid} has a partial program schedule; ignoring it")
        program_id, start_date = None, None
    return User(
        id=doc.uid,
        email=doc.email,
        first_name=doc.first_name,
        last_name=doc.last_name,
        experience=doc.experience,
        frequency=doc.frequency,
        goal=doc.goal,
        program_id=program_id,
        start_date=start_date.date() if start_date else None,
        custom_program=parse_workouts(doc.custom_program, program_id) if doc.custom_program else None,
        personal_records=doc.personal_records or {},
        running_profile=RunningProfile.model_validate(doc.running_profile or {}),
        strava=_strava_from_storage(doc.strava),
        last_strava_sync=as_utc(doc.last_strava_sync),
        is_admin=doc.is_admin,
        subscription_status=doc.subscription_status,
        stripe_customer_id=doc.stripe_customer_id,
        subscription_id=doc.subscription_id,
        trial_start_date=as_utc(doc.trial_start_date),
        cancel_at_period_end=bool(doc.cancel_at_period_end),
        cancellation_effective_date=as_utc(doc.cancellation_effective_date),
    )


def user_fields_to_storage(fields: Dict[str, Any]) -> Dict[str, Any]:
    stored: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "start_date":
            stored[name] = day_start(value) if value is not None else None
        elif name == "strava":
            stored[name] = _strava_to_storage(value)
        else:
            stored[name] = _dump(value)
    return stored


class MongoUserRepository(UserRepository):
    """Users in the ``users`` collection."""

    async def get(self, user_id):
        async with translate_store_errors("load user"):
            doc = await UserDocument.find_one(UserDocument.uid == user_id)
        return user_from_document(doc) if doc else None

    async def get_by_stripe_customer(self, customer_id):
        async with translate_store_errors("load user"):
            doc = await UserDocument.find_one(UserDocument.stripe_customer_id == customer_id)
        return user_from_document(doc) if doc else None

    async def create(self, user):
        data = user_fields_to_storage(user.model_dump(exclude={"id", "strava", "start_date"}))
        data.update(user_fields_to_storage({"strava": user.strava, "start_date": user.start_date}))
        doc = UserDocument(uid=user.id, **data)
        async with translate_store_errors("create user"):
            await doc.insert()
        return user

    async def update_fields(self, user_id, **fields):
        stored = user_fields_to_storage(fields)
        stored["updated_at"] = datetime.utcnow()
        async with translate_store_errors("update user"):
            await UserDocument.find_one(UserDocument.uid == user_id).update(Set(stored))
