"""
Time source used by the session.

Deadlines use a monotonic clock, the device clock is set from UTC wall time.
"""

import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Time capability consumed by the reader and the session."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary, non-decreasing origin."""
        ...

    def now(self) -> datetime:
        """Current UTC wall time."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        ...


class SystemClock:
    """Clock backed by the host's clocks."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
