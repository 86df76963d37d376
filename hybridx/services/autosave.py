"""
HybridX API - Debounced autosave for free-text session fields.

Notes are written after a quiet period (trailing-edge debounce) instead of
on every keystroke. ``flush`` writes whatever is pending right away and is
called before a workout is finished or skipped.

Writes for one writer are serialized, and the value written is always the
latest one scheduled at the moment the write starts, so an older value can
never land after a newer one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

from hybridx.repositories.base import SessionRepository

logger = logging.getLogger(__name__)

WriteFn = Callable[[str], Awaitable[None]]


class DebouncedWriter:
    """Trailing-edge debounced writer for a single value."""

    def __init__(self, write: WriteFn, delay: float):
        self._write = write
        self._delay = delay
        self._pending: Optional[str] = None
        self._has_pending = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def schedule(self, value: str) -> None:
        """Record a new value and restart the quiet-period timer."""
        self._pending = value
        self._has_pending = True
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._background_write())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_write(self) -> None:
        try:
            await self._write_pending()
        except Exception as e:
            # Value stays pending; the next flush retries and raises
            logger.error(f"Debounced write failed: {e}")

    async def _write_pending(self) -> None:
        async with self._lock:
            if not self._has_pending:
                return
            value = self._pending
            self._pending = None
            self._has_pending = False
            try:
                await self._write(value)
            except Exception:
                if not self._has_pending:
                    self._pending = value
                    self._has_pending = True
                raise

    async def flush(self) -> None:
        """Write the pending value now and wait for in-flight writes."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        await self._write_pending()

    def cancel(self) -> None:
        """Drop the pending value without writing it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
        self._has_pending = False

    async def cancel_and_wait(self) -> None:
        """
        Drop the pending value and wait until no write is in flight.

        After this returns, nothing this writer scheduled can reach the store.
        """
        self.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        async with self._lock:
            # A failed in-flight write puts its value back as pending
            self.cancel()


class NotesAutosaveRegistry:
    """One debounced notes writer per workout session."""

    def __init__(self, delay: Optional[float] = None):
        if delay is None:
            from settings import settings
            delay = settings.NOTES_AUTOSAVE_DELAY_SECONDS
        self.delay = delay
        self._writers: Dict[str, DebouncedWriter] = {}

    def schedule(self, sessions: SessionRepository, session_id: str, notes: str) -> None:
        writer = self._writers.get(session_id)
        if writer is None:
            async def write(value: str) -> None:
                await sessions.update_fields(session_id, notes=value)

            writer = DebouncedWriter(write, self.delay)
            self._writers[session_id] = writer
        writer.schedule(notes)

    async def flush(self, session_id: str) -> None:
        """Flush and forget the writer for a session, if any."""
        writer = self._writers.get(session_id)
        if writer is None:
            return
        await writer.flush()
        self._writers.pop(session_id, None)

    async def flush_all(self) -> None:
        """Flush every pending writer; failures are logged so the rest still flush."""
        for session_id in list(self._writers):
            try:
                await self.flush(session_id)
            except Exception as e:
                logger.error(f"Could not save pending notes for session {session_id}: {e}")

    async def discard(self, session_id: str) -> None:
        """Drop queued notes for a session and wait out any write already running."""
        writer = self._writers.pop(session_id, None)
        if writer is not None:
            await writer.cancel_and_wait()


notes_autosave: Optional[NotesAutosaveRegistry] = None


def get_notes_autosave() -> NotesAutosaveRegistry:
    """Process-wide registry, created on first use."""
    global notes_autosave
    if notes_autosave is None:
        notes_autosave = NotesAutosaveRegistry()
    return notes_autosave
