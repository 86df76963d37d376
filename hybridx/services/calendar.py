"""
HybridX API - Program Calendar.

Maps a program, a start date and a calendar date onto the workout that
falls on that date. Programs repeat once finished: with a program of
length L, the elapsed day count wraps modulo L.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Union

from hybridx.models.session import WorkoutSession
from hybridx.models.workout import Program, Workout, parse_workouts
from hybridx.utils.dates import to_calendar_date

logger = logging.getLogger(__name__)

REST_DAY_MARKERS = ("rest", "recover")  # "recover" also covers "recovery"

ProgramLike = Union[Program, Sequence[Union[Workout, dict]]]


@dataclass(frozen=True)
class ScheduledWorkout:
    """
    Result of mapping a date onto a program.

    Attributes:
        day: 1-based day within the program cycle, 0 when no program day
            applies (before the start date, or an empty program).
        workout: Workout on that day, None for rest days.
        elapsed_days: Whole calendar days since the start date.
    """

    day: int
    workout: Optional[Workout]
    elapsed_days: int = 0


@dataclass(frozen=True)
class CalendarDay:
    """One scheduled date in a user's calendar."""

    date: date
    day: int
    workout: Optional[Workout]
    session_id: Optional[str] = None
    completed: bool = False
    skipped: bool = False
    is_rest_day: bool = False


def _program_workouts(program: ProgramLike) -> List[Workout]:
    raw = program.workouts if isinstance(program, Program) else program
    workouts = []
    for workout in parse_workouts(raw):
        if workout.day < 1:
            logger.warning(f"Ignoring workout '{workout.title}' with invalid day {workout.day}")
            continue
        workouts.append(workout)
    return workouts


def program_length(program: ProgramLike) -> int:
    """Effective program length: the highest valid day number."""
    return max((w.day for w in _program_workouts(program)), default=0)


def resolve_workout_for_date(
    program: ProgramLike,
    start_date: Union[date, datetime],
    target_date: Union[date, datetime],
) -> ScheduledWorkout:
    """
    Find the workout scheduled on ``target_date``.

    Args:
        program: Program, or its list of workouts.
        start_date: Date the user started the program.
        target_date: Date to resolve.

    Returns:
        ScheduledWorkout with ``workout=None`` before the start date, for
        empty programs and for days without an entry.
    """
    elapsed = (to_calendar_date(target_date) - to_calendar_date(start_date)).days
    if elapsed < 0:
        return ScheduledWorkout(day=0, workout=None, elapsed_days=elapsed)

    workouts = _program_workouts(program)
    length = max((w.day for w in workouts), default=0)
    if length == 0:
        return ScheduledWorkout(day=0, workout=None, elapsed_days=elapsed)

    day = (elapsed % length) + 1
    workout = next((w for w in workouts if w.day == day), None)
    return ScheduledWorkout(day=day, workout=workout, elapsed_days=elapsed)


def is_rest_day(workout: Optional[Workout]) -> bool:
    """Rest days have no workout or a rest/recovery title."""
    if workout is None:
        return True
    title = workout.title.lower()
    return any(marker in title for marker in REST_DAY_MARKERS)


def _index_sessions(sessions: Iterable[WorkoutSession]) -> Dict[date, WorkoutSession]:
    indexed: Dict[date, WorkoutSession] = {}
    for session in sessions:
        current = indexed.get(session.workout_date)
        # One-off sessions win if duplicates ever exist for a date
        if current is None or (session.origin.is_one_off and not current.origin.is_one_off):
            indexed[session.workout_date] = session
    return indexed


def build_calendar(
    program: ProgramLike,
    start_date: Union[date, datetime],
    sessions: Iterable[WorkoutSession] = (),
    days: int = 365,
) -> List[CalendarDay]:
    """
    Build calendar entries for ``days`` dates from the program start.

    Session snapshots override the program for their date. Dates with
    nothing scheduled and nothing completed are left out.
    """
    start = to_calendar_date(start_date)
    workouts = _program_workouts(program)
    by_date = _index_sessions(sessions)

    calendar: List[CalendarDay] = []
    for offset in range(days):
        current = start + timedelta(days=offset)
        scheduled = resolve_workout_for_date(workouts, start, current)
        session = by_date.get(current)
        workout = session.displayed_workout(scheduled.workout) if session else scheduled.workout
        finished = bool(session and session.is_finished)
        if workout is None and not finished:
            continue
        calendar.append(CalendarDay(
            date=current,
            day=scheduled.day,
            workout=workout,
            session_id=session.id if session else None,
            completed=finished,
            skipped=bool(session and session.skipped),
            is_rest_day=is_rest_day(workout),
        ))
    return calendar
