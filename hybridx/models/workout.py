"""
HybridX API - Program and Workout Models.

Plain pydantic models for program content. Program documents are
authored by admins or imported, so ``Program.from_raw`` drops entries it
cannot parse instead of failing the whole program.
"""

import logging
from typing import Any, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError


logger = logging.getLogger(__name__)

ProgramType = Literal["hyrox", "running"]
PaceZone = Literal["recovery", "easy", "marathon", "threshold", "interval", "repetition"]


class Exercise(BaseModel):
    """A single exercise line in a HYROX/strength workout."""

    name: str
    details: str = ""


class PlannedRun(BaseModel):
    """A planned run within a running workout."""

    type: Literal["easy", "tempo", "intervals", "long", "recovery"] = "easy"
    distance: float = 0  # kilometers
    pace_zone: PaceZone = "easy"
    description: str
    target_pace: Optional[float] = None  # seconds per kilometer
    effort_level: int = Field(default=5, ge=1, le=10)
    no_intervals: Optional[int] = None


class Workout(BaseModel):
    """
    One day of a program.

    ``day`` is 1-based and not necessarily contiguous across a program.
    """

    day: int
    title: str
    program_type: ProgramType = "hyrox"
    exercises: List[Exercise] = Field(default_factory=list)
    runs: List[PlannedRun] = Field(default_factory=list)
    target_race: Optional[str] = None

    def completion_keys(self) -> List[str]:
        """Keys tracked in a session's ``completed_items``."""
        if self.program_type == "running":
            return [run.description for run in self.runs]
        return [exercise.name for exercise in self.exercises]


class WorkoutSnapshot(BaseModel):
    """
    Materialized override of the program schedule stored on a session.

    A snapshot with ``workout=None`` means "nothing scheduled on this date",
    which is different from having no snapshot at all.
    """

    workout: Optional[Workout] = None


class Program(BaseModel):
    """An administrator-authored, cyclic, day-indexed sequence of workouts."""

    id: Optional[str] = None
    name: str = ""
    description: str = ""
    program_type: ProgramType = "hyrox"
    workouts: List[Workout] = Field(default_factory=list)

    @property
    def length(self) -> int:
        return max((w.day for w in self.workouts if w.day >= 1), default=0)

    @classmethod
    def from_raw(
        cls,
        raw_workouts: Iterable[Any],
        **fields: Any
    ) -> "Program":
        """Build a program, skipping workout entries that fail validation."""
        return cls(workouts=parse_workouts(raw_workouts, fields.get("id")), **fields)


def parse_workouts(raw_workouts: Iterable[Any], program_id: Optional[str] = None) -> List[Workout]:
    """Parse raw workout dicts; malformed entries are logged and dropped."""
    workouts: List[Workout] = []
    for index, raw in enumerate(raw_workouts or []):
        if isinstance(raw, Workout):
            workouts.append(raw)
            continue
        try:
            workouts.append(Workout.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(
                f"Skipping malformed workout #{index} in program {program_id}: {e.error_count()} errors"
            )
    return workouts


class WorkoutAdjustment(BaseModel):
    """An AI-suggested replacement for one program day."""

    day: int
    original_title: str = ""
    modified_title: str = ""
    reason: str = ""
    modified_workout: Workout


class WeekAnalysis(BaseModel):
    """Coach's read of recent training plus any suggested plan changes."""

    analysis: str
    needs_adjustment: bool = False
    adjustments: List[WorkoutAdjustment] = Field(default_factory=list)
