"""Simulated clock shared by the engine and its timer jobs."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta


class SimulatedClock:
    """Wall clock that tests can pin to a fixed time or move forward.

    While no time is pinned, :meth:`now` returns the real current time.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: datetime | None = None

    def now(self) -> datetime:
        with self._lock:
            if self._current is not None:
                return self._current
        return datetime.now()

    def set_current_time(self, value: datetime) -> None:
        with self._lock:
            self._current = value

    def advance(self, seconds: float) -> datetime:
        """Pin the clock *seconds* past its current reading and return the new time."""
        with self._lock:
            base = self._current if self._current is not None else datetime.now()
            self._current = base + timedelta(seconds=seconds)
            return self._current

    def reset(self) -> None:
        """Return to real time."""
        with self._lock:
            self._current = None

    @property
    def is_pinned(self) -> bool:
        with self._lock:
            return self._current is not None
