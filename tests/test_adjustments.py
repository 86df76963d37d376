"""Tests for weekly plan review and applying adjustments to a custom program."""
from datetime import date

import pytest

from hybridx.models.workout import Exercise, WeekAnalysis, Workout, WorkoutAdjustment
from hybridx.services.adjustments import (
    NO_UPCOMING_ANALYSIS,
    AdjustmentService,
    apply_adjustments,
    upcoming_workouts,
)
from hybridx.utils.errors import NotFoundError, ValidationError
from tests.conftest import hyrox_workout


TODAY = date(2024, 3, 10)  # program day 2; tomorrow is the rest day (day 3)


def knee_friendly(day: int = 4) -> WorkoutAdjustment:
    return WorkoutAdjustment(
        day=day,
        original_title="Grip Gauntlet",
        modified_title="Grip Gauntlet (knee friendly)",
        reason="Reported knee pain",
        modified_workout=Workout(
            day=99,
            title="Grip Gauntlet (knee friendly)",
            exercises=[Exercise(name="Row", details="5 x 500m")],
        ),
    )


class FakeGemini:
    def __init__(self):
        self.calls = []

    async def analyze_week(self, user, recent_sessions, upcoming, custom_request=None):
        self.calls.append((recent_sessions, upcoming, custom_request))
        return WeekAnalysis(analysis="Knee pain reported.", needs_adjustment=True, adjustments=[knee_friendly()])


@pytest.fixture
def adjustments(users_repo, programs_repo, sessions_repo) -> AdjustmentService:
    return AdjustmentService(users_repo, programs_repo, sessions_repo)


class TestUpcomingWorkouts:

    def test_next_seven_days_once_per_program_day(self, program, user):
        upcoming = upcoming_workouts(program, user.start_date, TODAY)

        assert [w.day for w in upcoming] == [4, 1, 2]

    def test_nothing_before_the_program_starts(self, program):
        assert upcoming_workouts(program, date(2024, 6, 1), TODAY) == []


class TestApplyAdjustments:

    def test_replaces_matching_day_and_keeps_its_number(self, program):
        adjusted, applied = apply_adjustments(program.workouts, [knee_friendly()])

        assert applied == 1
        assert [w.day for w in adjusted] == [1, 2, 4]
        assert adjusted[2].title == "Grip Gauntlet (knee friendly)"
        assert adjusted[0] == program.workouts[0]

    def test_unknown_day_is_skipped(self, program):
        adjusted, applied = apply_adjustments(program.workouts, [knee_friendly(day=3)])

        assert applied == 0
        assert adjusted == program.workouts


class TestAdjustmentService:

    async def test_analyze_week_sends_recent_sessions_and_coming_week(self, adjustments, service, user):
        await service.resolve_todays_workout(user, TODAY)
        gemini = FakeGemini()

        analysis = await adjustments.analyze_week(user, gemini, TODAY, custom_request="Short on time")

        recent, upcoming, custom_request = gemini.calls[0]
        assert [s.workout_date for s in recent] == [TODAY]
        assert [w.day for w in upcoming] == [4, 1, 2]
        assert custom_request == "Short on time"
        assert analysis.needs_adjustment

    async def test_analyze_week_without_upcoming_workouts_skips_ai(self, adjustments, user):
        gemini = FakeGemini()
        not_started = user.model_copy(update={"start_date": date(2024, 6, 1)})

        analysis = await adjustments.analyze_week(not_started, gemini, TODAY)

        assert analysis.analysis == NO_UPCOMING_ANALYSIS
        assert not analysis.needs_adjustment
        assert gemini.calls == []

    async def test_analyze_week_requires_a_schedule(self, adjustments, user):
        with pytest.raises(ValidationError):
            await adjustments.analyze_week(user.model_copy(update={"program_id": None}), FakeGemini(), TODAY)

    async def test_first_apply_clones_base_program(self, adjustments, users_repo, programs_repo, program, user):
        result = await adjustments.apply(user, [knee_friendly()])

        stored = users_repo.items[user.id].custom_program
        assert result.applied == 1
        assert [w.title for w in stored] == ["Engine Builder", "Tempo Run", "Grip Gauntlet (knee friendly)"]
        assert programs_repo.items[program.id] == program

    async def test_apply_builds_on_existing_custom_program(self, adjustments, users_repo, program, user):
        customized = list(program.workouts)
        customized[0] = hyrox_workout(1, "Engine Builder (deload)", "Ski Erg")
        user = user.model_copy(update={"custom_program": customized})

        await adjustments.apply(user, [knee_friendly()])

        stored = users_repo.items[user.id].custom_program
        assert stored[0].title == "Engine Builder (deload)"
        assert stored[2].title == "Grip Gauntlet (knee friendly)"

    async def test_adjusted_day_is_what_the_dashboard_shows(self, adjustments, users_repo, service, user):
        await adjustments.apply(user, [knee_friendly()])
        user = users_repo.items[user.id]

        resolved = await service.resolve_todays_workout(user, date(2024, 3, 12))

        assert resolved.day == 4
        assert resolved.workout.title == "Grip Gauntlet (knee friendly)"
        assert resolved.session.completed_items == {"Row": False}

    async def test_nothing_applied_leaves_user_untouched(self, adjustments, users_repo, user):
        result = await adjustments.apply(user, [knee_friendly(day=3)])

        assert result.applied == 0
        assert users_repo.items[user.id].custom_program is None

    async def test_empty_adjustments_rejected(self, adjustments, user):
        with pytest.raises(ValidationError):
            await adjustments.apply(user, [])

    async def test_missing_base_program(self, adjustments, user):
        with pytest.raises(NotFoundError):
            await adjustments.apply(user.model_copy(update={"program_id": "gone"}), [knee_friendly()])
