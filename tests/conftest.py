"""Shared fixtures: settings environment and in-memory repositories."""
import os

os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("STRAVA_CLIENT_ID", "12345")
os.environ.setdefault("STRAVA_CLIENT_SECRET", "strava-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from hybridx.models.session import WorkoutSession
from hybridx.models.user import User
from hybridx.models.workout import Exercise, PlannedRun, Program, Workout
from hybridx.repositories.base import ProgramRepository, SessionRepository, UserRepository
from hybridx.services.sessions import SessionService
from hybridx.utils.errors import ConflictError, NotFoundError, PersistenceError


NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


class InMemorySessionRepository(SessionRepository):
    """Session store with the same (user_id, workout_date) uniqueness as MongoDB."""

    def __init__(self):
        self.items: Dict[str, WorkoutSession] = {}
        self.fail_writes_for: Set[date] = set()
        self.hide_next_find = False
        self.updates: List[dict] = []

    def _check_writable(self, session: WorkoutSession) -> None:
        if session.workout_date in self.fail_writes_for:
            raise PersistenceError(detail=f"write failed for {session.workout_date}")

    async def get(self, session_id):
        return self.items.get(session_id)

    async def find_for_date(self, user_id, workout_date):
        if self.hide_next_find:
            self.hide_next_find = False
            return None
        for session in self.items.values():
            if session.user_id == user_id and session.workout_date == workout_date:
                return session
        return None

    async def find_one_off_for_date(self, user_id, workout_date):
        for session in self.items.values():
            if (
                session.user_id == user_id
                and session.workout_date == workout_date
                and session.origin.is_one_off
            ):
                return session
        return None

    async def list_for_user(self, user_id):
        sessions = [s for s in self.items.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.workout_date, reverse=True)

    async def insert(self, session):
        self._check_writable(session)
        for existing in self.items.values():
            if existing.user_id == session.user_id and existing.workout_date == session.workout_date:
                raise ConflictError("Duplicate document while trying to create workout session")
        stored = session.model_copy(update={"id": uuid.uuid4().hex})
        self.items[stored.id] = stored
        return stored

    async def replace(self, session):
        self._check_writable(session)
        if session.id not in self.items:
            raise PersistenceError(detail=f"Workout session {session.id} no longer exists")
        self.items[session.id] = session
        return session

    async def update_fields(self, session_id, **fields):
        self.updates.append({"id": session_id, **fields})
        current = self.items.get(session_id)
        if current is not None:
            self._check_writable(current)
            self.items[session_id] = current.model_copy(update=fields)

    async def delete(self, session_id):
        self.items.pop(session_id, None)


class InMemoryProgramRepository(ProgramRepository):
    def __init__(self, programs=()):
        self.items: Dict[str, Program] = {p.id: p for p in programs}

    async def get(self, program_id):
        return self.items.get(program_id)

    async def list_all(self):
        return list(self.items.values())

    async def create(self, program):
        stored = program.model_copy(update={"id": uuid.uuid4().hex})
        self.items[stored.id] = stored
        return stored

    async def update(self, program):
        self.items[program.id] = program
        return program

    async def delete(self, program_id):
        self.items.pop(program_id, None)


class InMemoryUserRepository(UserRepository):
    def __init__(self, users=()):
        self.items: Dict[str, User] = {u.id: u for u in users}

    async def get(self, user_id):
        return self.items.get(user_id)

    async def get_by_stripe_customer(self, customer_id):
        for user in self.items.values():
            if user.stripe_customer_id == customer_id:
                return user
        return None

    async def create(self, user):
        if user.id in self.items:
            raise ConflictError("Duplicate document while trying to create user")
        self.items[user.id] = user
        return user

    async def update_fields(self, user_id, **fields):
        if user_id not in self.items:
            raise NotFoundError("User not found")
        self.items[user_id] = self.items[user_id].model_copy(update=fields)


def hyrox_workout(day: int, title: Optional[str] = None, *names: str) -> Workout:
    names = names or (f"Station {day}A", f"Station {day}B")
    return Workout(
        day=day,
        title=title or f"Day {day}",
        exercises=[Exercise(name=n, details="3 x 10") for n in names],
    )


def running_workout(day: int, title: str = "Tempo Run") -> Workout:
    return Workout(
        day=day,
        title=title,
        program_type="running",
        runs=[PlannedRun(type="tempo", distance=8, pace_zone="threshold", description="8k tempo")],
    )


@pytest.fixture
def program() -> Program:
    """Four-day cycle with day 3 left empty (a rest day)."""
    return Program(
        id="prog-1",
        name="HYROX Foundations",
        workouts=[
            hyrox_workout(1, "Engine Builder", "Ski Erg", "Sled Push"),
            running_workout(2),
            hyrox_workout(4, "Grip Gauntlet", "Farmers Carry", "Wall Balls"),
        ],
    )


@pytest.fixture
def user(program) -> User:
    return User(
        id="user-1",
        email="athlete@example.com",
        first_name="Sam",
        program_id=program.id,
        start_date=date(2024, 3, 1),
        trial_start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def sessions_repo() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def programs_repo(program) -> InMemoryProgramRepository:
    return InMemoryProgramRepository([program])


@pytest.fixture
def users_repo(user) -> InMemoryUserRepository:
    return InMemoryUserRepository([user])


@pytest.fixture
def service(sessions_repo, programs_repo) -> SessionService:
    return SessionService(sessions_repo, programs_repo, clock=lambda: NOW)
