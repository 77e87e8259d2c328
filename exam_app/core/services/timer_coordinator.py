"""Countdown for a timed attempt.

The countdown is a display convenience. The authoritative remaining time is
always derived from the stored start timestamp (see
:func:`remaining_from_start`), so throttled or missed ticks can never extend
an attempt.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
import logging
import math
from threading import Lock
from typing import Callable

from exam_app.constants.session_constants import (
    CAUTION_FRACTION,
    TICK_INTERVAL_SECONDS,
    WARNING_FRACTION,
)
from exam_app.core.services.periodic_task import PeriodicTask

logger = logging.getLogger(__name__)


class TimeLevel(str, Enum):
    NORMAL = "normal"
    CAUTION = "caution"
    WARNING = "warning"
    EXPIRED = "expired"


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    return math.floor((now - started_at).total_seconds())


def remaining_from_start(started_at: datetime, duration_minutes: int, now: datetime) -> int:
    """Seconds left in an attempt, clamped to ``[0, duration_minutes * 60]``."""
    total = duration_minutes * 60
    remaining = total - elapsed_seconds(started_at, now)
    return max(0, min(total, remaining))


def time_level(remaining: int, total_seconds: int) -> TimeLevel:
    if remaining <= 0:
        return TimeLevel.EXPIRED
    if total_seconds <= 0:
        return TimeLevel.NORMAL
    fraction = remaining / total_seconds
    if fraction <= WARNING_FRACTION:
        return TimeLevel.WARNING
    if fraction <= CAUTION_FRACTION:
        return TimeLevel.CAUTION
    return TimeLevel.NORMAL


def format_remaining(seconds: int) -> str:
    """Render seconds as ``m:ss``, or ``h:mm:ss`` from one hour upward."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class TimerCoordinator:
    """One-second countdown that fires a single timeout event."""

    def __init__(
        self,
        total_seconds: int,
        remaining_seconds: int,
        on_tick: Callable[[int], None] | None = None,
        on_timeout: Callable[[], None] | None = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        name: str = "ExamTimer",
    ) -> None:
        self._total_seconds = total_seconds
        self._remaining = max(0, min(total_seconds, remaining_seconds))
        self._on_tick = on_tick
        self._on_timeout = on_timeout
        self._lock = Lock()
        self._stopped = False
        self._timed_out = False
        self._task = PeriodicTask(tick_interval, self.tick, name=name)

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def total_seconds(self) -> int:
        return self._total_seconds

    @property
    def timed_out(self) -> bool:
        with self._lock:
            return self._timed_out

    def level(self) -> TimeLevel:
        return time_level(self.remaining, self._total_seconds)

    def is_warning(self) -> bool:
        """True during the last tenth of the duration, before expiry."""
        return self.level() is TimeLevel.WARNING

    def start(self, background: bool = True) -> None:
        """Begin counting down; an already expired countdown times out at once."""
        if self.remaining <= 0:
            self._fire_timeout()
            return
        if background:
            self._task.start()

    def tick(self) -> bool:
        """Advance the countdown by one second. Returns False once finished."""
        with self._lock:
            if self._stopped or self._timed_out:
                return False
            self._remaining = max(0, self._remaining - 1)
            remaining = self._remaining
        if self._on_tick is not None:
            self._on_tick(remaining)
        if remaining <= 0:
            self._fire_timeout()
            return False
        return True

    def resync(self, authoritative_remaining: int) -> None:
        """Pull the countdown down to the authoritative value; never adds time."""
        with self._lock:
            if self._stopped or self._timed_out:
                return
            if authoritative_remaining < self._remaining:
                logger.debug("Timer drifted by %ds; resyncing", self._remaining - authoritative_remaining)
                self._remaining = max(0, authoritative_remaining)
            expired = self._remaining <= 0
        if expired:
            self._fire_timeout()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
        self._task.stop()

    def _fire_timeout(self) -> None:
        with self._lock:
            if self._timed_out or self._stopped:
                return
            self._timed_out = True
            self._remaining = 0
        self._task.stop()
        if self._on_timeout is not None:
            self._on_timeout()
