"""
HybridX API - Profile Schemas.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from hybridx.models.user import RunningProfile, User
from hybridx.models.workout import Workout


class ProfileResponse(BaseModel):
    """Response model for profile data."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    experience: str
    frequency: str
    goal: str
    program_id: Optional[str] = None
    start_date: Optional[date] = None
    has_custom_program: bool = False
    personal_records: Dict[str, str] = Field(default_factory=dict)
    running_profile: RunningProfile
    training_paces: Optional[Dict[str, int]] = None
    strava_connected: bool = False
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User, training_paces: Optional[Dict[str, int]] = None) -> "ProfileResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            experience=user.experience,
            frequency=user.frequency,
            goal=user.goal,
            program_id=user.program_id,
            start_date=user.start_date,
            has_custom_program=bool(user.custom_program),
            personal_records=user.personal_records,
            running_profile=user.running_profile,
            training_paces=training_paces,
            strava_connected=user.strava is not None,
            is_admin=user.is_admin,
        )


class ProfileUpdateRequest(BaseModel):
    """Request model for updating profile. Unset fields are left alone."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    experience: Optional[str] = Field(default=None, pattern="^(beginner|intermediate|advanced)$")
    frequency: Optional[str] = None
    goal: Optional[str] = None
    personal_records: Optional[Dict[str, str]] = None
    running_profile: Optional[RunningProfile] = None


class ScheduleRequest(BaseModel):
    """
    Assign a program to the user, or clear it with both fields null.

    A program without a start date (or the reverse) is rejected.
    """

    program_id: Optional[str] = None
    start_date: Optional[date] = None
    custom_program: Optional[List[Workout]] = None

    @model_validator(mode="after")
    def program_and_start_together(self) -> "ScheduleRequest":
        if (self.program_id is None) != (self.start_date is None):
            raise ValueError("program_id and start_date must be set together")
        return self
