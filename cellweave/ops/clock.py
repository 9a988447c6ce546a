"""Wall-clock sources for tombstone timestamps."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime

from cellweave.schema.models import TombstoneClock

# Anything earlier is a monotonic or uninitialised clock, not wall time.
WALL_CLOCK_EPOCH_FLOOR_MS = int(datetime(2001, 1, 1, tzinfo=UTC).timestamp() * 1000)

DEFAULT_FUTURE_SKEW_MS = 5 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class ClockSource:
    """A time source plus whether its readings may drive permanent deletion."""

    def __init__(self, now: Callable[[], int] = now_ms, *, trusted: bool = False) -> None:
        self._now = now
        self.trusted = trusted

    def now(self) -> int:
        return self._now()

    @property
    def label(self) -> TombstoneClock:
        return TombstoneClock.TRUSTED if self.trusted else TombstoneClock.LOCAL


SYSTEM_CLOCK = ClockSource()
