"""
HybridX API - Workout Session Service.

Finds or creates the single session for a user and calendar date and
applies every change made to it afterwards: item toggles, notes, AI
extensions, finish/skip, swaps between dates and Strava links.

Which session counts for a date:
1. One-off sessions (AI-generated or custom) are checked first by
   ``resolve_todays_workout``.
2. An existing session is returned unchanged unless ``overwrite`` is set,
   or it is an untouched one-off session being replaced by a program
   session.
3. Otherwise a fresh session is built with every item incomplete.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple, Union

from hybridx.models.session import (
    SessionOrigin,
    StravaActivity,
    StravaActivitySummary,
    WorkoutSession,
)
from hybridx.models.user import User
from hybridx.models.workout import Exercise, PlannedRun, Program, Workout, WorkoutSnapshot
from hybridx.repositories.base import ProgramRepository, SessionRepository
from hybridx.services.autosave import NotesAutosaveRegistry
from hybridx.services.calendar import resolve_workout_for_date
from hybridx.utils.dates import as_utc, to_calendar_date, utc_now
from hybridx.utils.errors import (
    ConflictError,
    HybridXException,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SKIPPED_MARKER = "[WORKOUT SKIPPED]"
REST_DAY_TITLE = "Rest Day"
RUN_SPORT_TYPES = frozenset({"Run", "TrailRun", "VirtualRun"})

DateLike = Union[date, datetime]


@dataclass
class TodaysWorkout:
    """What the dashboard shows for a date."""

    day: int
    workout: Optional[Workout]
    session: Optional[WorkoutSession]
    program: Optional[Program] = None

    @property
    def is_one_off(self) -> bool:
        return bool(self.session and self.session.origin.is_one_off)


def _linked_note(activity: StravaActivity) -> str:
    return f"Linked Strava activity: {activity.name} ({activity.id})"


def _without_skip_marker(notes: str) -> str:
    """Notes with the skip marker removed; a linked activity means the workout was done."""
    if SKIPPED_MARKER not in notes:
        return notes
    parts = [part.strip() for part in notes.split(SKIPPED_MARKER)]
    return "\n\n".join(part for part in parts if part)


class SessionService:
    """Session reconciliation on top of the session and program repositories."""

    def __init__(
        self,
        sessions: SessionRepository,
        programs: ProgramRepository,
        autosave: Optional[NotesAutosaveRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.programs = programs
        self.autosave = autosave
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_owned_session(self, user_id: str, session_id: str) -> WorkoutSession:
        session = await self.sessions.get(session_id)
        if session is None or session.user_id != user_id:
            raise NotFoundError("Workout session not found")
        return session

    async def get_one_off_session(self, user_id: str, workout_date: DateLike) -> Optional[WorkoutSession]:
        return await self.sessions.find_one_off_for_date(user_id, to_calendar_date(workout_date))

    async def get_session_for_date(self, user_id: str, workout_date: DateLike) -> Optional[WorkoutSession]:
        return await self.sessions.find_for_date(user_id, to_calendar_date(workout_date))

    async def list_user_sessions(self, user_id: str) -> List[WorkoutSession]:
        return await self.sessions.list_for_user(user_id)

    async def load_user_program(self, user: User) -> Optional[Program]:
        """The user's active program, or None when no schedule applies."""
        if not user.has_schedule:
            return None
        if user.custom_program:
            return Program(id=user.program_id, name="Custom program", workouts=user.custom_program)
        program = await self.programs.get(user.program_id)
        if program is None:
            logger.warning(f"Program {user.program_id} for user {user.id} not found")
        return program

    # ------------------------------------------------------------------
    # Find or create
    # ------------------------------------------------------------------

    def _new_session(
        self,
        user_id: str,
        origin: SessionOrigin,
        workout_date: date,
        workout: Optional[Workout],
        duration: Optional[str] = None,
        snapshot: bool = False,
    ) -> WorkoutSession:
        keys = workout.completion_keys() if workout else []
        keep_details = snapshot or not origin.is_program
        return WorkoutSession(
            user_id=user_id,
            origin=origin,
            workout_date=workout_date,
            workout_title=workout.title if workout else REST_DAY_TITLE,
            program_type=workout.program_type if workout else "hyrox",
            started_at=self.clock(),
            completed_items={key: False for key in keys},
            duration=duration,
            workout_details=WorkoutSnapshot(workout=workout) if keep_details else None,
        )

    @staticmethod
    def _is_untouched(session: WorkoutSession) -> bool:
        return (
            not session.is_finished
            and not any(session.completed_items.values())
            and not session.notes
        )

    def _supersedes(self, existing: WorkoutSession, origin: SessionOrigin) -> bool:
        """Whether a program session may replace the existing one-off session."""
        if not (existing.origin.is_one_off and origin.is_program):
            return False
        if self._is_untouched(existing):
            logger.warning(
                f"Replacing untouched {existing.origin.kind.value} session {existing.id} "
                f"with program {origin.program_id} for {existing.workout_date}"
            )
            return True
        # Needs a product decision before merging; keep the user's progress
        logger.warning(
            f"Program session requested for {existing.workout_date} while one-off session "
            f"{existing.id} has progress; keeping the one-off session"
        )
        return False

    async def get_or_create_workout_session(
        self,
        user_id: str,
        origin: SessionOrigin,
        workout_date: DateLike,
        workout: Workout,
        overwrite: bool = False,
        duration: Optional[str] = None,
    ) -> WorkoutSession:
        """
        Return the session for ``(user_id, workout_date)``, creating it if needed.

        Args:
            user_id: Owner of the session.
            origin: Program, one-off AI, custom or Strava-linked.
            workout_date: Calendar date of the session.
            workout: Workout presented on that date.
            overwrite: Replace any existing session for the date.
            duration: Free-text duration for custom workouts.

        Raises:
            PersistenceError: the store read or write failed.
        """
        workout_date = to_calendar_date(workout_date)
        existing = await self.sessions.find_for_date(user_id, workout_date)

        if existing is not None and not overwrite and not self._supersedes(existing, origin):
            return existing

        fresh = self._new_session(user_id, origin, workout_date, workout, duration)
        if existing is not None:
            logger.info(f"Overwriting workout session {existing.id} for {workout_date}")
            return await self.sessions.replace(fresh.model_copy(update={"id": existing.id}))

        try:
            return await self.sessions.insert(fresh)
        except ConflictError:
            # Another request created the session between our read and insert
            current = await self.sessions.find_for_date(user_id, workout_date)
            if current is None:
                raise PersistenceError(detail=f"Session for {workout_date} vanished after conflict")
            if overwrite:
                return await self.sessions.replace(fresh.model_copy(update={"id": current.id}))
            return current

    async def resolve_todays_workout(self, user: User, today: DateLike) -> TodaysWorkout:
        """
        Resolve the workout and session shown for ``today``.

        Order: one-off session, then a program session carrying a snapshot
        (e.g. after a swap), then the program schedule, creating the session
        when a workout is scheduled.
        """
        today = to_calendar_date(today)

        one_off = await self.sessions.find_one_off_for_date(user.id, today)
        if one_off is not None:
            return TodaysWorkout(day=0, workout=one_off.displayed_workout(None), session=one_off)

        program = await self.load_user_program(user)
        if program is None:
            return TodaysWorkout(day=0, workout=None, session=None)

        scheduled = resolve_workout_for_date(program, user.start_date, today)
        existing = await self.sessions.find_for_date(user.id, today)
        if existing is not None and existing.has_override:
            return TodaysWorkout(
                day=scheduled.day,
                workout=existing.displayed_workout(scheduled.workout),
                session=existing,
                program=program,
            )

        if scheduled.workout is None:
            return TodaysWorkout(day=scheduled.day, workout=None, session=existing, program=program)

        session = await self.get_or_create_workout_session(
            user.id, SessionOrigin.program(program.id), today, scheduled.workout
        )
        return TodaysWorkout(
            day=scheduled.day,
            workout=session.displayed_workout(scheduled.workout),
            session=session,
            program=program,
        )

    async def _ensure_replaceable(self, user_id: str, workout_date: DateLike) -> None:
        existing = await self.sessions.find_for_date(user_id, to_calendar_date(workout_date))
        if existing is not None and existing.is_finished:
            raise ValidationError(f"The workout on {existing.workout_date} is already completed")

    async def create_one_off_workout(
        self,
        user_id: str,
        workout_date: DateLike,
        workout: Workout,
    ) -> WorkoutSession:
        """Replace the date's unfinished session with an AI-generated workout."""
        await self._ensure_replaceable(user_id, workout_date)
        return await self.get_or_create_workout_session(
            user_id, SessionOrigin.one_off_ai(), workout_date, workout, overwrite=True
        )

    async def create_custom_workout(
        self,
        user_id: str,
        workout_date: DateLike,
        title: str,
        program_type: str = "hyrox",
        description: str = "",
        duration: Optional[str] = None,
    ) -> WorkoutSession:
        """Log a user-entered workout, replacing the date's unfinished session."""
        await self._ensure_replaceable(user_id, workout_date)
        if program_type == "running":
            workout = Workout(
                day=0,
                title=title,
                program_type="running",
                runs=[PlannedRun(description=description or title)],
            )
        else:
            workout = Workout(
                day=0,
                title=title,
                program_type="hyrox",
                exercises=[Exercise(name=title, details=description)],
            )
        return await self.get_or_create_workout_session(
            user_id,
            SessionOrigin.custom_workout(),
            workout_date,
            workout,
            overwrite=True,
            duration=duration,
        )

    # ------------------------------------------------------------------
    # Swap
    # ------------------------------------------------------------------

    def _with_snapshot(
        self,
        existing: Optional[WorkoutSession],
        user_id: str,
        origin: SessionOrigin,
        workout_date: date,
        workout: Optional[Workout],
    ) -> WorkoutSession:
        if existing is None:
            return self._new_session(user_id, origin, workout_date, workout, snapshot=True)
        keys = workout.completion_keys() if workout else []
        return existing.model_copy(update={
            "workout_title": workout.title if workout else REST_DAY_TITLE,
            "program_type": workout.program_type if workout else existing.program_type,
            "completed_items": {key: False for key in keys},
            "workout_details": WorkoutSnapshot(workout=workout),
        })

    async def displayed_workout_for_date(
        self,
        user: User,
        workout_date: date,
        program: Optional[Program] = None,
    ) -> Tuple[Optional[WorkoutSession], Optional[Workout]]:
        """The date's session (if any) and the workout shown for it."""
        session = await self.sessions.find_for_date(user.id, workout_date)
        scheduled = None
        if program is not None:
            scheduled = resolve_workout_for_date(program, user.start_date, workout_date).workout
        if session is not None:
            return session, session.displayed_workout(scheduled)
        return None, scheduled

    async def swap_scheduled_workouts(
        self,
        user: User,
        date1: DateLike,
        date2: DateLike,
    ) -> Tuple[WorkoutSession, WorkoutSession]:
        """Swap whatever the user currently sees on two dates of their program."""
        program = await self.load_user_program(user)
        if program is None:
            raise ValidationError("No training program is assigned")
        date1, date2 = to_calendar_date(date1), to_calendar_date(date2)
        _, workout1 = await self.displayed_workout_for_date(user, date1, program)
        _, workout2 = await self.displayed_workout_for_date(user, date2, program)
        return await self.swap_workouts(user.id, program.id, date1, workout1, date2, workout2)

    async def _write(self, existing: Optional[WorkoutSession], session: WorkoutSession) -> WorkoutSession:
        if existing is None:
            return await self.sessions.insert(session)
        return await self.sessions.replace(session)

    async def _restore(self, previous: Optional[WorkoutSession], written: WorkoutSession) -> None:
        try:
            if previous is None:
                await self.sessions.delete(written.id)
            else:
                await self.sessions.replace(previous)
        except HybridXException as e:
            logger.error(f"Could not roll back session {written.id} after failed swap: {e}")

    async def swap_workouts(
        self,
        user_id: str,
        program_id: str,
        date1: DateLike,
        workout1: Optional[Workout],
        date2: DateLike,
        workout2: Optional[Workout],
    ) -> Tuple[WorkoutSession, WorkoutSession]:
        """
        Exchange the displayed workouts of two dates.

        ``workout1`` moves to ``date2`` and ``workout2`` to ``date1``; a None
        workout leaves an explicit "nothing scheduled" snapshot behind. The
        program itself is untouched. Either both sessions are written or
        neither is.

        Returns:
            The sessions for ``date1`` and ``date2``.

        Raises:
            ValidationError: same date twice, or a date holds a finished or
                one-off session.
            PersistenceError: a write failed; the other write is rolled back.
        """
        date1, date2 = to_calendar_date(date1), to_calendar_date(date2)
        if date1 == date2:
            raise ValidationError("Cannot swap a workout with itself")

        session1 = await self.sessions.find_for_date(user_id, date1)
        session2 = await self.sessions.find_for_date(user_id, date2)
        for session in (session1, session2):
            if session is None:
                continue
            if session.is_finished:
                raise ValidationError(f"The workout on {session.workout_date} is already completed")
            if session.origin.is_one_off:
                raise ValidationError(f"A one-off workout is scheduled on {session.workout_date}")

        origin = SessionOrigin.program(program_id)
        updated2 = self._with_snapshot(session2, user_id, origin, date2, workout1)
        updated1 = self._with_snapshot(session1, user_id, origin, date1, workout2)

        written2 = await self._write(session2, updated2)
        try:
            written1 = await self._write(session1, updated1)
        except (PersistenceError, ConflictError) as e:
            await self._restore(session2, written2)
            raise PersistenceError("Could not swap workouts. Please try again.", detail=str(e)) from e

        logger.info(f"Swapped workouts between {date1} and {date2} for user {user_id}")
        return written1, written2

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def _flush_notes(self, session: WorkoutSession) -> WorkoutSession:
        """Write queued notes and return the session as now stored."""
        if self.autosave is None:
            return session
        await self.autosave.flush(session.id)
        return await self.sessions.get(session.id) or session

    async def _apply(self, session: WorkoutSession, **fields) -> WorkoutSession:
        await self.sessions.update_fields(session.id, **fields)
        return session.model_copy(update=fields)

    async def toggle_item(self, user_id: str, session_id: str, item: str, completed: bool) -> WorkoutSession:
        session = await self.get_owned_session(user_id, session_id)
        if item not in session.completed_items:
            raise ValidationError(f"'{item}' is not part of this workout")
        completed_items = dict(session.completed_items)
        completed_items[item] = completed
        return await self._apply(session, completed_items=completed_items)

    async def autosave_notes(self, user_id: str, session_id: str, notes: str) -> None:
        """Queue a debounced notes write; without a registry the write is immediate."""
        session = await self.get_owned_session(user_id, session_id)
        if self.autosave is None:
            await self.sessions.update_fields(session.id, notes=notes)
            return
        self.autosave.schedule(self.sessions, session.id, notes)

    async def save_notes(self, user_id: str, session_id: str, notes: str) -> WorkoutSession:
        """Write notes now, superseding anything still queued."""
        session = await self.get_owned_session(user_id, session_id)
        if self.autosave is not None:
            await self.autosave.discard(session.id)
        return await self._apply(session, notes=notes)

    async def extend_workout(
        self,
        user_id: str,
        session_id: str,
        exercises: Iterable[Exercise],
    ) -> WorkoutSession:
        """Append AI-suggested exercises; names already present are skipped."""
        session = await self.get_owned_session(user_id, session_id)
        if session.is_finished:
            raise ValidationError("Cannot extend a completed workout")

        known = set(session.completed_items) | {e.name for e in session.extended_exercises}
        added = []
        for exercise in exercises:
            if exercise.name in known:
                continue
            known.add(exercise.name)
            added.append(exercise)
        if not added:
            return session

        completed_items = dict(session.completed_items)
        completed_items.update({exercise.name: False for exercise in added})
        return await self._apply(
            session,
            extended_exercises=session.extended_exercises + added,
            completed_items=completed_items,
        )

    async def finish_workout(
        self,
        user_id: str,
        session_id: str,
        notes: Optional[str] = None,
    ) -> WorkoutSession:
        """Mark a session finished; pending autosaved notes are flushed first."""
        session = await self._flush_notes(await self.get_owned_session(user_id, session_id))
        fields = {"finished_at": self.clock()}
        if notes is not None:
            fields["notes"] = notes
        return await self._apply(session, **fields)

    async def skip_workout(
        self,
        user_id: str,
        session_id: str,
        notes: Optional[str] = None,
    ) -> WorkoutSession:
        session = await self._flush_notes(await self.get_owned_session(user_id, session_id))
        text = session.notes if notes is None else notes
        if SKIPPED_MARKER not in text:
            text = f"{text}\n\n{SKIPPED_MARKER}" if text else SKIPPED_MARKER
        return await self._apply(session, finished_at=self.clock(), skipped=True, notes=text)

    async def mark_uploaded_to_strava(self, user_id: str, session_id: str, strava_id: str) -> WorkoutSession:
        session = await self.get_owned_session(user_id, session_id)
        return await self._apply(
            session,
            strava_id=strava_id,
            uploaded_to_strava=True,
            strava_uploaded_at=self.clock(),
        )

    # ------------------------------------------------------------------
    # Strava
    # ------------------------------------------------------------------

    async def link_strava_activity_to_session(
        self,
        user_id: str,
        activity: StravaActivity,
        session_id: Optional[str] = None,
    ) -> WorkoutSession:
        """
        Complete a session with an external activity.

        Without ``session_id`` the session for the activity's date is used,
        or created from the activity itself. Linking the same activity again
        changes nothing.
        """
        if session_id is not None:
            session = await self.get_owned_session(user_id, session_id)
        else:
            activity_date = to_calendar_date(activity.local_start)
            session = await self.sessions.find_for_date(user_id, activity_date)
            if session is None:
                placeholder = Workout(
                    day=0,
                    title=activity.name,
                    program_type="running" if activity.sport_type in RUN_SPORT_TYPES else "hyrox",
                )
                session = await self.get_or_create_workout_session(
                    user_id, SessionOrigin.strava_linked(), activity_date, placeholder
                )

        session = await self._flush_notes(session)

        workout = session.displayed_workout(None)
        keys = set(session.completed_items)
        if workout is not None:
            keys.update(workout.completion_keys())

        note = _linked_note(activity)
        notes = _without_skip_marker(session.notes)
        if note not in notes:
            notes = f"{notes}\n\n{note}" if notes else note

        return await self._apply(
            session,
            finished_at=as_utc(activity.start_date),
            skipped=False,
            completed_items={key: True for key in sorted(keys)},
            notes=notes,
            strava_id=str(activity.id),
            strava_activity=StravaActivitySummary(
                name=activity.name,
                distance=activity.distance,
                moving_time=activity.moving_time,
                sport_type=activity.sport_type,
            ),
        )
