"""
HybridX API - Weekly Plan Adjustments.

Gathers what the coach needs to review a training week (recent sessions and
the next seven days of the user's schedule) and applies accepted
adjustments. Adjustments never touch the shared program: they are written
to the user's ``custom_program``, which is cloned from the base program the
first time and built on afterwards.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from hybridx.models.session import WorkoutSession
from hybridx.models.user import User
from hybridx.models.workout import Program, WeekAnalysis, Workout, WorkoutAdjustment
from hybridx.repositories.base import ProgramRepository, SessionRepository, UserRepository
from hybridx.services.calendar import resolve_workout_for_date
from hybridx.services.gemini import GeminiService
from hybridx.utils.dates import to_calendar_date
from hybridx.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

RECENT_SESSION_LIMIT = 5
LOOKAHEAD_DAYS = 7
NO_UPCOMING_ANALYSIS = "No upcoming workouts found to adjust."


def upcoming_workouts(program: Program, start_date: date, today: date, days: int = LOOKAHEAD_DAYS) -> List[Workout]:
    """Scheduled workouts from tomorrow on, one entry per program day."""
    workouts: List[Workout] = []
    seen = set()
    for offset in range(1, days + 1):
        workout = resolve_workout_for_date(program, start_date, today + timedelta(days=offset)).workout
        if workout is None or workout.day in seen:
            continue
        seen.add(workout.day)
        workouts.append(workout)
    return workouts


def apply_adjustments(
    workouts: Iterable[Workout],
    adjustments: Iterable[WorkoutAdjustment],
) -> Tuple[List[Workout], int]:
    """
    Replace program days with adjusted workouts.

    The replacement keeps the day it replaces, so the cycle length never
    changes. Adjustments for days the program does not have are skipped.

    Returns:
        The new workout list and the number of adjustments applied.
    """
    adjusted = list(workouts)
    index = {workout.day: i for i, workout in enumerate(adjusted)}
    applied = 0
    for adjustment in adjustments:
        position = index.get(adjustment.day)
        if position is None:
            logger.warning(f"No workout on day {adjustment.day} to adjust")
            continue
        adjusted[position] = adjustment.modified_workout.model_copy(update={"day": adjustment.day})
        applied += 1
    return adjusted, applied


@dataclass
class AppliedAdjustments:
    applied: int
    custom_program: List[Workout]


class AdjustmentService:
    """Weekly review and adjustment of a user's schedule."""

    def __init__(
        self,
        users: UserRepository,
        programs: ProgramRepository,
        sessions: SessionRepository,
    ):
        self.users = users
        self.programs = programs
        self.sessions = sessions

    async def _base_program(self, user: User) -> Program:
        if not user.has_schedule:
            raise ValidationError("No training program is assigned")
        program = await self.programs.get(user.program_id)
        if program is None:
            raise NotFoundError("Program not found")
        return program

    async def _active_program(self, user: User) -> Program:
        program = await self._base_program(user)
        if user.custom_program:
            return program.model_copy(update={"workouts": user.custom_program})
        return program

    async def recent_sessions(self, user_id: str, limit: int = RECENT_SESSION_LIMIT) -> List[WorkoutSession]:
        return (await self.sessions.list_for_user(user_id))[:limit]

    async def analyze_week(
        self,
        user: User,
        gemini: GeminiService,
        today: date,
        custom_request: Optional[str] = None,
    ) -> WeekAnalysis:
        """
        Ask the coach to review recent sessions against the coming week.

        Raises:
            ValidationError: no schedule is assigned.
            NotFoundError: the assigned program no longer exists.
            ExternalServiceError: the AI provider failed.
        """
        program = await self._active_program(user)
        upcoming = upcoming_workouts(program, user.start_date, to_calendar_date(today))
        if not upcoming:
            return WeekAnalysis(analysis=NO_UPCOMING_ANALYSIS)

        recent = await self.recent_sessions(user.id)
        analysis = await gemini.analyze_week(user, recent, upcoming, custom_request)
        logger.info(
            f"Week analysis for user {user.id}: {len(analysis.adjustments)} adjustments suggested"
        )
        return analysis

    async def apply(self, user: User, adjustments: List[WorkoutAdjustment]) -> AppliedAdjustments:
        """
        Write accepted adjustments into the user's custom program.

        Raises:
            ValidationError: nothing to apply, or no schedule is assigned.
            NotFoundError: the base program no longer exists.
        """
        if not adjustments:
            raise ValidationError("No adjustments provided")

        base = await self._base_program(user)
        current = user.custom_program or base.workouts
        custom_program, applied = apply_adjustments(current, adjustments)
        if applied:
            await self.users.update_fields(user.id, custom_program=custom_program)
            logger.info(f"Applied {applied} adjustment(s) to the custom program of user {user.id}")
        return AppliedAdjustments(applied=applied, custom_program=custom_program)
