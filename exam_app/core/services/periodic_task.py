"""Cancellable fixed-interval loop running on a daemon thread."""

from __future__ import annotations

import logging
from threading import Event, Lock, Thread, current_thread
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Calls ``callback`` every ``interval`` seconds until stopped.

    The loop ends when ``callback`` returns ``False`` or when :meth:`stop` is
    called. Exceptions raised by ``callback`` are logged and the loop keeps
    running, so a failing iteration is retried on the next interval.
    """

    def __init__(self, interval: float, callback: Callable[[], bool | None], name: str) -> None:
        if interval <= 0:
            raise ValueError("Interval must be positive.")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._stop_event = Event()
        self._lock = Lock()
        self._thread: Thread | None = None

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        """Stop the loop; an iteration already running is allowed to finish."""
        self._stop_event.set()
        with self._lock:
            thread = self._thread
        if thread is not None and thread is not current_thread() and thread.is_alive():
            thread.join(timeout)

    def is_running(self) -> bool:
        with self._lock:
            thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                keep_going = self._callback()
            except Exception:
                logger.exception("Periodic task %s failed; retrying next interval", self._name)
                continue
            if keep_going is False:
                break
