"""
HybridX API - Workout Session Models.

A session is the single record of what workout user U had on date D and
how far they got with it.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hybridx.models.workout import Exercise, ProgramType, Workout, WorkoutSnapshot


class OriginKind(str, Enum):
    """Where a session's workout came from."""

    PROGRAM = "program"
    ONE_OFF_AI = "one-off-ai"
    CUSTOM_WORKOUT = "custom-workout"
    STRAVA_LINKED = "strava-linked"


ONE_OFF_KINDS = frozenset({OriginKind.ONE_OFF_AI, OriginKind.CUSTOM_WORKOUT})


@dataclass(frozen=True)
class SessionOrigin:
    """
    Tagged origin of a session.

    Stored in the ``program_id`` field: real program ids for ``PROGRAM``,
    the kind's value for everything else.
    """

    kind: OriginKind
    program_id: Optional[str] = None

    @classmethod
    def program(cls, program_id: str) -> "SessionOrigin":
        return cls(OriginKind.PROGRAM, program_id)

    @classmethod
    def one_off_ai(cls) -> "SessionOrigin":
        return cls(OriginKind.ONE_OFF_AI)

    @classmethod
    def custom_workout(cls) -> "SessionOrigin":
        return cls(OriginKind.CUSTOM_WORKOUT)

    @classmethod
    def strava_linked(cls) -> "SessionOrigin":
        return cls(OriginKind.STRAVA_LINKED)

    @classmethod
    def parse(cls, stored: str) -> "SessionOrigin":
        """Read the stored ``program_id`` value back into an origin."""
        for kind in OriginKind:
            if kind is not OriginKind.PROGRAM and stored == kind.value:
                return cls(kind)
        return cls.program(stored)

    @property
    def stored_value(self) -> str:
        if self.kind is OriginKind.PROGRAM:
            return self.program_id or ""
        return self.kind.value

    @property
    def is_one_off(self) -> bool:
        return self.kind in ONE_OFF_KINDS

    @property
    def is_program(self) -> bool:
        return self.kind is OriginKind.PROGRAM


class StravaActivity(BaseModel):
    """Activity record as returned by the Strava API (subset we use)."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    distance: float = 0  # meters
    moving_time: int = 0  # seconds
    elapsed_time: int = 0
    sport_type: str = "Workout"
    start_date: datetime
    start_date_local: Optional[datetime] = None

    @property
    def local_start(self) -> datetime:
        """Start time in the athlete's timezone, used to pick the calendar date."""
        return self.start_date_local or self.start_date


class StravaActivitySummary(BaseModel):
    """Key details of a linked activity stored on the session."""

    name: Optional[str] = None
    distance: Optional[float] = None  # meters
    moving_time: Optional[int] = None  # seconds
    sport_type: Optional[str] = None


class WorkoutSession(BaseModel):
    """Per-user, per-date record of the presented workout and its progress."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: Optional[str] = None
    user_id: str
    origin: SessionOrigin
    workout_date: date
    workout_title: str = "Workout"
    program_type: ProgramType = "hyrox"
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    completed_items: Dict[str, bool] = Field(default_factory=dict)
    notes: str = ""
    duration: Optional[str] = None
    extended_exercises: List[Exercise] = Field(default_factory=list)
    workout_details: Optional[WorkoutSnapshot] = None

    strava_id: Optional[str] = None
    uploaded_to_strava: bool = False
    strava_uploaded_at: Optional[datetime] = None
    strava_activity: Optional[StravaActivitySummary] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def has_override(self) -> bool:
        return self.workout_details is not None

    def displayed_workout(self, scheduled: Optional[Workout]) -> Optional[Workout]:
        """The session's snapshot if present, otherwise the scheduled workout."""
        if self.workout_details is not None:
            return self.workout_details.workout
        return scheduled
