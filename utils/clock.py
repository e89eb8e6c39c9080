# ====================================================
# utils/clock.py
# ====================================================
"""
Time sources for the game engine.

Every engine operation asks its clock for "now" in integer epoch
milliseconds, so tests can swap in a ManualClock and move time by hand.
"""

import time


class SystemClock:
    """Wall-clock milliseconds (time.time based)."""

    def now(self) -> int:
        return int(time.time() * 1000)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: int = 0):
        self._now = int(start_ms)

    def now(self) -> int:
        return self._now

    def advance(self, ms: int = 0, *, seconds: float = 0, hours: float = 0) -> int:
        self._now += int(ms + seconds * 1000 + hours * 3_600_000)
        return self._now

    def set(self, ms: int) -> None:
        self._now = int(ms)
