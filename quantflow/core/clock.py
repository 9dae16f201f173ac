"""
Clocks: where timestamps for logs and run bookkeeping come from.
Never consulted by the per-bar decision path.
"""

from __future__ import annotations
import time
from typing import Optional


class Clock:
    def now(self) -> float:
        raise NotImplementedError

    def observe(self, bar_time: int) -> None:
        """Called by the engine for every processed bar."""


class WallClock(Clock):
    def now(self) -> float:
        return time.time()


class SimulatedClock(Clock):
    """Follows the time of the last processed bar."""

    def __init__(self, start: Optional[int] = None):
        self._now = float(start or 0)

    def now(self) -> float:
        return self._now

    def observe(self, bar_time: int) -> None:
        self._now = float(bar_time)
