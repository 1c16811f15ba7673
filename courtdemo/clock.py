"""Countdown timers shown as ``hh:mm:ss.zzz`` text."""

from __future__ import annotations

import time
from typing import Callable

ZERO_TEXT = "00:00:00.000"
TICK_INTERVAL_MS = 1000 // 60
_DAY_MS = 1000 * 3600 * 24


def format_remaining(msecs: int) -> str:
    """Format remaining milliseconds, wrapping at one day."""
    if msecs <= 0:
        return ZERO_TEXT
    msecs %= _DAY_MS
    hours, rest = divmod(msecs, 3600 * 1000)
    minutes, rest = divmod(rest, 60 * 1000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class Countdown:
    """A countdown towards a target time; ``tick`` refreshes its text."""

    def __init__(self, clock: Callable[[], int] = _monotonic_ms) -> None:
        self._clock = clock
        self._target = clock()
        self._active = False
        self.text = ""

    @property
    def remaining(self) -> int:
        """Milliseconds left until the target, never negative."""
        return max(0, self._target - self._clock())

    def start(self, msecs: int | None = None) -> None:
        """Start ticking, optionally setting a new duration first."""
        if msecs is not None:
            self.set(msecs)
        self._active = True

    def set(self, msecs: int, update_text: bool = False) -> None:
        """Aim the countdown ``msecs`` from now."""
        now = self._clock()
        self._target = now + msecs
        if update_text:
            self.text = format_remaining(self._target - now)

    def pause(self) -> None:
        self._active = False

    def stop(self) -> None:
        self.text = ZERO_TEXT
        self._active = False

    def skip(self, msecs: int) -> None:
        """Move the target ``msecs`` closer and refresh the text."""
        self.set(self._target - self._clock() - msecs, True)

    def is_active(self) -> bool:
        return self._active

    def tick(self) -> str:
        """Refresh the text; stop once the target is reached."""
        if self._active:
            now = self._clock()
            if now >= self._target:
                self.stop()
            else:
                self.text = format_remaining(self._target - now)
        return self.text