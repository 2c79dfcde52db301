"""Single-flight guard for generation sessions.

At most one generation runs per controller. A second request made while a
session is active is rejected, never queued.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Iterator

from ..errors import AlreadyInProgress

LOGGER = logging.getLogger(__name__)


class SessionState(Enum):
    """State of the session guard."""

    IDLE = auto()
    BUSY = auto()


@dataclass
class GenerationSession:
    """Represents an active generation session."""

    session_id: int
    label: str
    acquired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def elapsed(self) -> float:
        """Seconds since the session was acquired."""

        return (datetime.now(timezone.utc) - self.acquired_at).total_seconds()


class SessionGuard:
    """Tracks whether a generation is in flight.

    ``try_acquire``/``release`` are the primitive operations; :meth:`hold`
    wraps them so the guard is released on every exit path.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._active: GenerationSession | None = None
        self._session_counter = 0

    # ------------------------------------------------------------------
    # Public State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._state is SessionState.BUSY

    @property
    def active_label(self) -> str | None:
        with self._lock:
            return self._active.label if self._active else None

    @property
    def active_session(self) -> GenerationSession | None:
        with self._lock:
            return self._active

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def try_acquire(self, label: str = "generation") -> bool:
        """Mark a session active; return ``False`` when one already is."""

        with self._lock:
            if self._state is SessionState.BUSY:
                LOGGER.info(
                    "Rejected %s: %s is still running",
                    label,
                    self._active.label if self._active else "another generation",
                )
                return False
            self._session_counter += 1
            self._active = GenerationSession(session_id=self._session_counter, label=label)
            self._state = SessionState.BUSY
            LOGGER.info("Generation session %s acquired (%s)", self._session_counter, label)
            return True

    def release(self) -> None:
        """Return to idle. Releasing an idle guard is a no-op."""

        with self._lock:
            if self._state is SessionState.IDLE:
                return
            session = self._active
            self._active = None
            self._state = SessionState.IDLE
            if session is not None:
                LOGGER.info(
                    "Generation session %s released (%s) after %.2fs",
                    session.session_id,
                    session.label,
                    session.elapsed(),
                )

    @contextmanager
    def hold(self, label: str = "generation") -> Iterator[GenerationSession]:
        """Context manager that raises :class:`AlreadyInProgress` when busy."""

        if not self.try_acquire(label):
            raise AlreadyInProgress(details={"active": self.active_label or ""})
        session = self._active
        assert session is not None
        try:
            yield session
        finally:
            self.release()


__all__ = ["SessionGuard", "SessionState", "GenerationSession"]
