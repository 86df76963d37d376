"""
HybridX API - Workout Schemas.

Pydantic schemas for today's workout, the calendar and session tracking.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hybridx.models.session import StravaActivitySummary, WorkoutSession
from hybridx.models.workout import Exercise, ProgramType, Workout, WorkoutAdjustment
from hybridx.services.calendar import CalendarDay
from hybridx.services.sessions import TodaysWorkout


class SessionResponse(BaseModel):
    """A workout session as returned to the client."""

    id: str
    workout_date: date
    origin: str
    program_id: Optional[str] = None
    workout_title: str
    program_type: ProgramType
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    completed_items: Dict[str, bool] = Field(default_factory=dict)
    notes: str = ""
    duration: Optional[str] = None
    extended_exercises: List[Exercise] = Field(default_factory=list)
    workout: Optional[Workout] = None
    has_override: bool = False
    strava_id: Optional[str] = None
    uploaded_to_strava: bool = False
    strava_activity: Optional[StravaActivitySummary] = None

    @classmethod
    def from_session(cls, session: WorkoutSession, scheduled: Optional[Workout] = None) -> "SessionResponse":
        return cls(
            id=session.id,
            workout_date=session.workout_date,
            origin=session.origin.kind.value,
            program_id=session.origin.program_id,
            workout_title=session.workout_title,
            program_type=session.program_type,
            started_at=session.started_at,
            finished_at=session.finished_at,
            skipped=session.skipped,
            completed_items=session.completed_items,
            notes=session.notes,
            duration=session.duration,
            extended_exercises=session.extended_exercises,
            workout=session.displayed_workout(scheduled),
            has_override=session.has_override,
            strava_id=session.strava_id,
            uploaded_to_strava=session.uploaded_to_strava,
            strava_activity=session.strava_activity,
        )


class TodayResponse(BaseModel):
    """Schema for the dashboard's workout of the day."""

    date: date
    day: int
    program_id: Optional[str] = None
    workout: Optional[Workout] = None
    is_rest_day: bool
    is_one_off: bool = False
    session: Optional[SessionResponse] = None

    @classmethod
    def build(cls, today: date, resolved: TodaysWorkout, is_rest_day: bool) -> "TodayResponse":
        return cls(
            date=today,
            day=resolved.day,
            program_id=resolved.program.id if resolved.program else None,
            workout=resolved.workout,
            is_rest_day=is_rest_day,
            is_one_off=resolved.is_one_off,
            session=SessionResponse.from_session(resolved.session, resolved.workout) if resolved.session else None,
        )


class CalendarDayResponse(BaseModel):
    date: date
    day: int
    workout: Optional[Workout] = None
    session_id: Optional[str] = None
    completed: bool = False
    skipped: bool = False
    is_rest_day: bool = False

    @classmethod
    def from_day(cls, day: CalendarDay) -> "CalendarDayResponse":
        return cls(
            date=day.date,
            day=day.day,
            workout=day.workout,
            session_id=day.session_id,
            completed=day.completed,
            skipped=day.skipped,
            is_rest_day=day.is_rest_day,
        )


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    total_workouts: int
    this_week_workouts: int
    this_month_workouts: int


class CustomWorkoutRequest(BaseModel):
    """
    Schema for logging a custom workout.

    Attributes:
        title: Name of the activity.
        program_type: "hyrox" or "running".
        description: What was done.
        duration: Free-text duration, e.g. "45 min".
        workout_date: Date to log it for, defaults to today.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Sled push intervals",
                "program_type": "hyrox",
                "description": "8 x 25m heavy sled push",
                "duration": "40 min",
            }
        }
    )

    title: str = Field(..., min_length=1, max_length=200)
    program_type: ProgramType = "hyrox"
    description: str = ""
    duration: Optional[str] = None
    workout_date: Optional[date] = None


class OneOffWorkoutRequest(BaseModel):
    workout_date: Optional[date] = None


class ToggleItemRequest(BaseModel):
    item: str
    completed: bool


class NotesRequest(BaseModel):
    notes: str = Field(..., max_length=10000)


class FinishRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=10000)


class SwapRequest(BaseModel):
    """Swap the workouts shown on two dates of the user's program."""

    date1: date
    date2: date


class LinkStravaRequest(BaseModel):
    activity_id: int
    session_id: Optional[str] = None


class AnalyzeWeekRequest(BaseModel):
    on: Optional[date] = None  # client's local date
    custom_request: Optional[str] = Field(default=None, max_length=1000)


class ApplyAdjustmentsRequest(BaseModel):
    adjustments: List[WorkoutAdjustment] = Field(..., min_length=1)


class ApplyAdjustmentsResponse(BaseModel):
    adjustments_applied: int
    message: str
    custom_program: List[Workout]
