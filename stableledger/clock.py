"""
clock.py - Logical clock shared by the engine and its price feeds.

Staleness checks compare quote timestamps against Clock.current_time, so
simulations and tests control time explicitly instead of reading the wall clock.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional


class Clock:
    """
    Monotonic logical clock.

    Example:
        clock = Clock(datetime(2025, 1, 1))
        clock.advance(timedelta(hours=1))
        clock.current_time  # datetime(2025, 1, 1, 1, 0)
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

    @property
    def current_time(self) -> datetime:
        """Current logical time."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the clock to a new time.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def advance(self, delta: timedelta) -> datetime:
        """Advance by a non-negative delta and return the new time."""
        self.advance_time(self._current_time + delta)
        return self._current_time

    def __call__(self) -> datetime:
        return self._current_time

    def __repr__(self) -> str:
        return f"Clock({self._current_time.isoformat()})"
