"""
HybridX API - Models Package.

Plain domain models used by the services. The Beanie documents live in
``hybridx.models.mongodb`` and are imported by the repositories only.
"""

from hybridx.models.workout import (
    Exercise,
    PlannedRun,
    Program,
    Workout,
    WorkoutSnapshot,
)
from hybridx.models.session import (
    OriginKind,
    SessionOrigin,
    StravaActivity,
    StravaActivitySummary,
    WorkoutSession,
)
from hybridx.models.user import RunningProfile, StravaTokens, User

__all__ = [
    "Exercise",
    "PlannedRun",
    "Program",
    "Workout",
    "WorkoutSnapshot",
    "OriginKind",
    "SessionOrigin",
    "StravaActivity",
    "StravaActivitySummary",
    "WorkoutSession",
    "RunningProfile",
    "StravaTokens",
    "User",
]
