"""Tests for session reconciliation: find-or-create, one-offs, swaps and progress."""
import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from hybridx.models.session import OriginKind, SessionOrigin, StravaActivity
from hybridx.models.workout import Exercise
from hybridx.services.autosave import NotesAutosaveRegistry
from hybridx.services.sessions import SKIPPED_MARKER, SessionService
from hybridx.utils.errors import NotFoundError, PersistenceError, ValidationError
from tests.conftest import NOW, InMemorySessionRepository, hyrox_workout


START = date(2024, 3, 1)


class SlowNotesRepository(InMemorySessionRepository):
    """Holds the "draft" notes write until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def update_fields(self, session_id, **fields):
        if fields.get("notes") == "draft":
            await self.release.wait()
        await super().update_fields(session_id, **fields)


class TestGetOrCreateWorkoutSession:

    async def test_creates_session_with_all_items_incomplete(self, service, program):
        workout = program.workouts[0]

        session = await service.get_or_create_workout_session(
            "user-1", SessionOrigin.program(program.id), START, workout
        )

        assert session.id
        assert session.completed_items == {"Ski Erg": False, "Sled Push": False}
        assert session.workout_title == "Engine Builder"
        assert session.started_at == NOW
        assert session.workout_details is None

    async def test_running_workout_tracks_run_descriptions(self, service, program):
        session = await service.get_or_create_workout_session(
            "user-1", SessionOrigin.program(program.id), START, program.workouts[1]
        )

        assert session.completed_items == {"8k tempo": False}
        assert session.program_type == "running"

    async def test_is_idempotent_per_user_and_date(self, service, sessions_repo, program):
        origin = SessionOrigin.program(program.id)
        first = await service.get_or_create_workout_session("user-1", origin, START, program.workouts[0])
        again = await service.get_or_create_workout_session(
            "user-1", origin, datetime(2024, 3, 1, 22, 15), program.workouts[1]
        )

        assert again.id == first.id
        assert again.workout_title == "Engine Builder"
        assert len(sessions_repo.items) == 1

    async def test_overwrite_replaces_in_place(self, service, sessions_repo, program):
        origin = SessionOrigin.program(program.id)
        first = await service.get_or_create_workout_session("user-1", origin, START, program.workouts[0])

        replaced = await service.get_or_create_workout_session(
            "user-1", origin, START, program.workouts[2], overwrite=True
        )

        assert replaced.id == first.id
        assert replaced.workout_title == "Grip Gauntlet"
        assert len(sessions_repo.items) == 1

    async def test_concurrent_create_returns_existing(self, service, sessions_repo, program):
        origin = SessionOrigin.program(program.id)
        existing = await service.get_or_create_workout_session("user-1", origin, START, program.workouts[0])
        sessions_repo.hide_next_find = True

        result = await service.get_or_create_workout_session("user-1", origin, START, program.workouts[0])

        assert result.id == existing.id
        assert len(sessions_repo.items) == 1

    async def test_one_off_keeps_snapshot(self, service):
        workout = hyrox_workout(0, "Full Body Blitz")

        session = await service.create_one_off_workout("user-1", START, workout)

        assert session.origin.kind is OriginKind.ONE_OFF_AI
        assert session.workout_details.workout == workout


class TestOneOffPrecedence:

    async def test_program_request_supersedes_untouched_one_off(self, service, sessions_repo, program):
        one_off = await service.create_one_off_workout("user-1", START, hyrox_workout(0, "Blitz"))

        session = await service.get_or_create_workout_session(
            "user-1", SessionOrigin.program(program.id), START, program.workouts[0]
        )

        assert session.id == one_off.id
        assert session.origin.is_program
        assert len(sessions_repo.items) == 1

    async def test_one_off_with_progress_is_kept(self, service, program):
        one_off = await service.create_one_off_workout("user-1", START, hyrox_workout(0, "Blitz"))
        await service.save_notes("user-1", one_off.id, "felt strong")

        session = await service.get_or_create_workout_session(
            "user-1", SessionOrigin.program(program.id), START, program.workouts[0]
        )

        assert session.id == one_off.id
        assert session.origin.kind is OriginKind.ONE_OFF_AI

    async def test_one_off_lookup(self, service, program):
        await service.get_or_create_workout_session(
            "user-1", SessionOrigin.program(program.id), START, program.workouts[0]
        )
        custom = await service.create_custom_workout(
            "user-1", START + timedelta(days=1), "Hill sprints", program_type="running"
        )

        assert await service.get_one_off_session("user-1", START) is None
        assert (await service.get_one_off_session("user-1", START + timedelta(days=1))).id == custom.id
        assert (await service.get_session_for_date("user-1", START)).workout_title == "Engine Builder"
        assert custom.completed_items == {"Hill sprints": False}

    async def test_todays_workout_prefers_one_off(self, service, user):
        await service.create_one_off_workout("user-1", START, hyrox_workout(0, "Blitz"))

        today = await service.resolve_todays_workout(user, START)

        assert today.is_one_off
        assert today.workout.title == "Blitz"

    async def test_cannot_replace_finished_session(self, service, user):
        today = await service.resolve_todays_workout(user, START)
        await service.finish_workout("user-1", today.session.id)

        with pytest.raises(ValidationError):
            await service.create_custom_workout("user-1", START, "Sled pushes")


class TestResolveTodaysWorkout:

    async def test_creates_program_session(self, service, sessions_repo, user):
        today = await service.resolve_todays_workout(user, START + timedelta(days=1))

        assert today.day == 2
        assert today.workout.title == "Tempo Run"
        assert today.session is not None
        assert len(sessions_repo.items) == 1

    async def test_rest_day_creates_nothing(self, service, sessions_repo, user):
        today = await service.resolve_todays_workout(user, START + timedelta(days=2))

        assert today.day == 3
        assert today.workout is None
        assert today.session is None
        assert sessions_repo.items == {}

    async def test_user_without_schedule(self, service, user):
        unscheduled = user.model_copy(update={"program_id": None, "start_date": None})

        today = await service.resolve_todays_workout(unscheduled, START)

        assert today.workout is None
        assert today.day == 0

    async def test_missing_program_is_not_an_error(self, service, user):
        orphan = user.model_copy(update={"program_id": "deleted-program"})

        today = await service.resolve_todays_workout(orphan, START)

        assert today.workout is None
        assert today.session is None

    async def test_custom_program_replaces_program_workouts(self, service, user):
        custom = user.model_copy(update={"custom_program": [hyrox_workout(1, "My Own Day")]})

        today = await service.resolve_todays_workout(custom, START + timedelta(days=5))

        assert today.workout.title == "My Own Day"


class TestSwapWorkouts:

    async def test_swap_exchanges_displayed_workouts(self, service, user):
        day1, day2 = START, START + timedelta(days=1)

        first, second = await service.swap_scheduled_workouts(user, day1, day2)

        assert first.workout_details.workout.title == "Tempo Run"
        assert second.workout_details.workout.title == "Engine Builder"
        assert first.completed_items == {"8k tempo": False}
        assert (await service.resolve_todays_workout(user, day1)).workout.title == "Tempo Run"
        assert (await service.resolve_todays_workout(user, day2)).workout.title == "Engine Builder"

    async def test_swapping_twice_restores_original(self, service, user):
        day1, day2 = START, START + timedelta(days=1)

        await service.swap_scheduled_workouts(user, day1, day2)
        await service.swap_scheduled_workouts(user, day1, day2)

        assert (await service.resolve_todays_workout(user, day1)).workout.title == "Engine Builder"
        assert (await service.resolve_todays_workout(user, day2)).workout.title == "Tempo Run"

    async def test_swap_into_rest_day_leaves_explicit_rest(self, service, user):
        training, rest = START, START + timedelta(days=2)

        first, second = await service.swap_scheduled_workouts(user, training, rest)

        assert first.workout_details is not None
        assert first.workout_details.workout is None
        assert first.workout_title == "Rest Day"
        today = await service.resolve_todays_workout(user, training)
        assert today.workout is None
        assert (await service.resolve_todays_workout(user, rest)).workout.title == "Engine Builder"

    async def test_swap_does_not_touch_program(self, service, programs_repo, user, program):
        before = program.model_dump()

        await service.swap_scheduled_workouts(user, START, START + timedelta(days=1))

        assert (await programs_repo.get(program.id)).model_dump() == before

    async def test_failed_second_write_rolls_back_first(self, service, sessions_repo, user):
        day1, day2 = START, START + timedelta(days=1)
        sessions_repo.fail_writes_for = {day1}

        with pytest.raises(PersistenceError):
            await service.swap_scheduled_workouts(user, day1, day2)

        assert sessions_repo.items == {}

    async def test_failed_write_restores_existing_session(self, service, sessions_repo, user):
        day1, day2 = START, START + timedelta(days=1)
        original = (await service.resolve_todays_workout(user, day2)).session
        sessions_repo.fail_writes_for = {day1}

        with pytest.raises(PersistenceError):
            await service.swap_scheduled_workouts(user, day1, day2)

        assert sessions_repo.items[original.id] == original

    async def test_finished_session_cannot_be_swapped(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session
        await service.finish_workout("user-1", session.id)

        with pytest.raises(ValidationError):
            await service.swap_scheduled_workouts(user, START, START + timedelta(days=1))

    async def test_same_date_is_rejected(self, service, user):
        with pytest.raises(ValidationError):
            await service.swap_scheduled_workouts(user, START, START)


class TestProgress:

    async def test_toggle_item(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        updated = await service.toggle_item("user-1", session.id, "Ski Erg", True)

        assert updated.completed_items == {"Ski Erg": True, "Sled Push": False}

    async def test_toggle_unknown_item(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        with pytest.raises(ValidationError):
            await service.toggle_item("user-1", session.id, "Burpees", True)

    async def test_other_users_session_is_not_found(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        with pytest.raises(NotFoundError):
            await service.toggle_item("someone-else", session.id, "Ski Erg", True)

    async def test_extend_adds_only_new_exercises(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        extended = await service.extend_workout(
            "user-1",
            session.id,
            [Exercise(name="Sled Push"), Exercise(name="Plank", details="3 x 60s"), Exercise(name="Plank")],
        )

        assert [e.name for e in extended.extended_exercises] == ["Plank"]
        assert extended.completed_items["Plank"] is False
        assert len(extended.completed_items) == 3

    async def test_skip_marks_finished_once(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        skipped = await service.skip_workout("user-1", session.id, notes="sick")
        again = await service.skip_workout("user-1", session.id)

        assert skipped.skipped
        assert skipped.finished_at == NOW
        assert again.notes.count(SKIPPED_MARKER) == 1
        assert again.notes.startswith("sick")

    async def test_finish_flushes_pending_notes(self, sessions_repo, programs_repo, user):
        service = SessionService(
            sessions_repo, programs_repo, autosave=NotesAutosaveRegistry(delay=60), clock=lambda: NOW
        )
        session = (await service.resolve_todays_workout(user, START)).session

        await service.autosave_notes("user-1", session.id, "last set was brutal")
        assert sessions_repo.items[session.id].notes == ""

        finished = await service.finish_workout("user-1", session.id)

        assert finished.notes == "last set was brutal"
        assert sessions_repo.items[session.id].notes == "last set was brutal"
        assert sessions_repo.items[session.id].finished_at == NOW

    async def test_explicit_save_wins_over_autosave_in_flight(self, programs_repo, user):
        sessions_repo = SlowNotesRepository()
        service = SessionService(
            sessions_repo, programs_repo, autosave=NotesAutosaveRegistry(delay=0.01), clock=lambda: NOW
        )
        session = (await service.resolve_todays_workout(user, START)).session

        await service.autosave_notes("user-1", session.id, "draft")
        await asyncio.sleep(0.05)  # debounce fired, "draft" write is blocked
        save = asyncio.ensure_future(service.save_notes("user-1", session.id, "final text"))
        await asyncio.sleep(0.01)
        sessions_repo.release.set()
        saved = await save

        assert saved.notes == "final text"
        assert sessions_repo.items[session.id].notes == "final text"


class TestStravaLink:

    @staticmethod
    def activity(**overrides) -> StravaActivity:
        data = {
            "id": 987,
            "name": "Morning Run",
            "distance": 8000.0,
            "moving_time": 2400,
            "sport_type": "Run",
            "start_date": "2024-03-01T07:00:00Z",
            "start_date_local": "2024-03-01T08:00:00Z",
        }
        data.update(overrides)
        return StravaActivity.model_validate(data)

    async def test_link_completes_existing_session(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session

        linked = await service.link_strava_activity_to_session("user-1", self.activity())

        assert linked.id == session.id
        assert linked.finished_at == datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
        assert all(linked.completed_items.values())
        assert set(linked.completed_items) == {"Ski Erg", "Sled Push"}
        assert "Morning Run" in linked.notes
        assert linked.strava_id == "987"
        assert linked.strava_activity.distance == 8000.0

    async def test_link_is_idempotent(self, service, sessions_repo, user):
        session = (await service.resolve_todays_workout(user, START)).session

        await service.link_strava_activity_to_session("user-1", self.activity(), session_id=session.id)
        once = sessions_repo.items[session.id]
        await service.link_strava_activity_to_session("user-1", self.activity(), session_id=session.id)
        twice = sessions_repo.items[session.id]

        assert once == twice

    async def test_link_without_session_creates_placeholder(self, service, sessions_repo):
        linked = await service.link_strava_activity_to_session(
            "user-1", self.activity(start_date_local="2024-03-05T18:30:00Z")
        )

        assert linked.origin.kind is OriginKind.STRAVA_LINKED
        assert linked.workout_date == date(2024, 3, 5)
        assert linked.workout_title == "Morning Run"
        assert linked.program_type == "running"
        assert linked.is_finished
        assert len(sessions_repo.items) == 1

    async def test_link_after_skip_counts_as_done(self, service, user):
        session = (await service.resolve_todays_workout(user, START)).session
        await service.skip_workout("user-1", session.id, notes="felt flat")

        linked = await service.link_strava_activity_to_session("user-1", self.activity(), session_id=session.id)

        assert not linked.skipped
        assert SKIPPED_MARKER not in linked.notes
        assert linked.notes.startswith("felt flat")
        assert "Morning Run" in linked.notes
        assert all(linked.completed_items.values())
