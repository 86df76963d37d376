"""
HybridX API - Workout streaks.

Counts consecutive training days over completed (finished, not skipped)
sessions.
"""

from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from hybridx.models.session import WorkoutSession


@dataclass
class StreakData:
    current_streak: int = 0
    longest_streak: int = 0
    total_workouts: int = 0
    this_week_workouts: int = 0
    this_month_workouts: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _completed_dates(sessions: Iterable[WorkoutSession]) -> List[date]:
    """Distinct completed workout dates, newest first."""
    dates = {s.workout_date for s in sessions if s.is_finished and not s.skipped}
    return sorted(dates, reverse=True)


def calculate_streak_data(sessions: Iterable[WorkoutSession], today: Optional[date] = None) -> StreakData:
    """
    Build streak statistics for a user's sessions.

    The current streak only counts if the latest completed workout was
    today or yesterday. Week and month counts cover the last 7 and 30 days.
    """
    today = today or date.today()
    sessions = [s for s in sessions if s.is_finished and not s.skipped]
    dates = _completed_dates(sessions)
    if not dates:
        return StreakData()

    current = 0
    if dates[0] in (today, today - timedelta(days=1)):
        expected = dates[0]
        for day in dates:
            if day != expected:
                break
            current += 1
            expected = day - timedelta(days=1)

    longest = run = 1
    for newer, older in zip(dates, dates[1:]):
        if (newer - older).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    week_start = today - timedelta(days=7)
    month_start = today - timedelta(days=30)
    return StreakData(
        current_streak=current,
        longest_streak=longest,
        total_workouts=len(sessions),
        this_week_workouts=sum(1 for s in sessions if s.workout_date >= week_start),
        this_month_workouts=sum(1 for s in sessions if s.workout_date >= month_start),
    )
