# hybridx/models/mongodb.py
"""
HybridX MongoDB Document Models.

Beanie ODM models for MongoDB. Only the repositories touch these; the
services work with the plain models in ``hybridx.models``.
"""

from beanie import Document, Indexed
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel
from datetime import datetime
from typing import Optional, List, Dict, Any


class UserDocument(Document):
    """User model for MongoDB."""

    uid: Indexed(str, unique=True)  # identity provider subject
    email: str
    first_name: str = ""
    last_name: str = ""
    experience: str = "beginner"
    frequency: str = "3"
    goal: str = "hybrid"

    # Program schedule (both set or both empty)
    program_id: Optional[str] = None
    start_date: Optional[datetime] = None
    custom_program: Optional[List[Dict[str, Any]]] = None

    personal_records: Dict[str, str] = Field(default_factory=dict)
    running_profile: Dict[str, Any] = Field(default_factory=dict)

    # Strava integration (tokens encrypted at rest)
    strava: Optional[Dict[str, Any]] = None
    last_strava_sync: Optional[datetime] = None

    # Subscription
    is_admin: bool = False
    subscription_status: Optional[str] = "trial"
    stripe_customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    trial_start_date: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancellation_effective_date: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        indexes = [
            "stripe_customer_id",
        ]

    class Config:
        json_schema_extra = {
            "example": {
                "uid": "firebase-uid-123",
                "email": "athlete@hybridx.club",
                "first_name": "Sam",
                "experience": "intermediate",
                "goal": "hybrid",
                "program_id": "hyrox-12-week",
                "start_date": "2024-01-01T00:00:00"
            }
        }


class ProgramDocument(Document):
    """Training program model for MongoDB."""

    name: str
    description: str = ""
    program_type: str = "hyrox"  # hyrox or running
    # Raw workout dicts; malformed entries are tolerated and skipped on read
    workouts: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "programs"
        indexes = [
            "program_type",
        ]


class WorkoutSessionDocument(Document):
    """Workout session model for MongoDB - one per user per date."""

    user_id: str
    program_id: str  # real program id or one-off-ai / custom-workout / strava-linked
    workout_date: datetime  # midnight of the calendar date
    workout_title: str = "Workout"
    program_type: str = "hyrox"
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    skipped: bool = False
    completed_items: Dict[str, bool] = Field(default_factory=dict)
    notes: str = ""
    duration: Optional[str] = None
    extended_exercises: List[Dict[str, Any]] = Field(default_factory=list)
    workout_details: Optional[Dict[str, Any]] = None  # {"workout": {...} | None}

    # Strava linkage
    strava_id: Optional[str] = None
    uploaded_to_strava: bool = False
    strava_uploaded_at: Optional[datetime] = None
    strava_activity: Optional[Dict[str, Any]] = None

    class Settings:
        name = "workoutSessions"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("workout_date", ASCENDING)],
                unique=True,
                name="user_date_unique",
            ),
            IndexModel(
                [("user_id", ASCENDING), ("workout_date", DESCENDING)],
                name="user_history",
            ),
        ]
