"""
HybridX API - Repository interfaces.

Services depend on these interfaces; ``hybridx.repositories.mongo``
provides the Beanie-backed implementations.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, List, Optional

from hybridx.models.session import WorkoutSession
from hybridx.models.user import User
from hybridx.models.workout import Program


class SessionRepository(ABC):
    """Storage for workout sessions, keyed by (user_id, workout_date)."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[WorkoutSession]:
        ...

    @abstractmethod
    async def find_for_date(self, user_id: str, workout_date: date) -> Optional[WorkoutSession]:
        ...

    @abstractmethod
    async def find_one_off_for_date(self, user_id: str, workout_date: date) -> Optional[WorkoutSession]:
        """Session for the date whose origin is one-off AI or custom."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[WorkoutSession]:
        """All sessions for a user, newest date first."""

    @abstractmethod
    async def insert(self, session: WorkoutSession) -> WorkoutSession:
        """
        Insert a new session and return it with its id.

        Raises:
            ConflictError: a session already exists for the user and date.
        """

    @abstractmethod
    async def replace(self, session: WorkoutSession) -> WorkoutSession:
        """Overwrite the stored session with the same id."""

    @abstractmethod
    async def update_fields(self, session_id: str, **fields: Any) -> None:
        """Partial update; values are domain objects."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...


class ProgramRepository(ABC):
    """Storage for training programs."""

    @abstractmethod
    async def get(self, program_id: str) -> Optional[Program]:
        ...

    @abstractmethod
    async def list_all(self) -> List[Program]:
        ...

    @abstractmethod
    async def create(self, program: Program) -> Program:
        ...

    @abstractmethod
    async def update(self, program: Program) -> Program:
        ...

    @abstractmethod
    async def delete(self, program_id: str) -> None:
        ...


class UserRepository(ABC):
    """Storage for users, keyed by the identity provider's subject id."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_stripe_customer(self, customer_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def create(self, user: User) -> User:
        ...

    @abstractmethod
    async def update_fields(self, user_id: str, **fields: Any) -> None:
        """Partial update; values are domain objects."""
