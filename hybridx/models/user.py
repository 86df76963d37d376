"""
HybridX API - User Model.

Domain view of a trainee: profile, program schedule, Strava connection
and the raw subscription fields the status resolver reads.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from hybridx.models.workout import Workout


class StravaTokens(BaseModel):
    """OAuth tokens for the Strava connection."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: str = ""
    athlete_id: Optional[int] = None


class RunningProfile(BaseModel):
    """Benchmark race times (total seconds) used to derive training paces."""

    benchmark_paces: Dict[str, float] = Field(default_factory=dict)
    injury_history: List[str] = Field(default_factory=list)


class User(BaseModel):
    """A trainee, identified by the identity provider's subject id."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    experience: str = "beginner"  # beginner/intermediate/advanced
    frequency: str = "3"  # 3, 4, 5+
    goal: str = "hybrid"  # strength/endurance/hybrid

    program_id: Optional[str] = None
    start_date: Optional[date] = None
    custom_program: Optional[List[Workout]] = None

    personal_records: Dict[str, str] = Field(default_factory=dict)
    running_profile: RunningProfile = Field(default_factory=RunningProfile)

    strava: Optional[StravaTokens] = None
    last_strava_sync: Optional[datetime] = None

    is_admin: bool = False
    subscription_status: Optional[str] = "trial"  # stored value, not the resolved one
    stripe_customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    trial_start_date: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancellation_effective_date: Optional[datetime] = None

    @property
    def has_schedule(self) -> bool:
        return bool(self.program_id) and self.start_date is not None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
