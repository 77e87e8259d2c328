from __future__ import annotations

from datetime import timedelta
from threading import Event

from conftest import FakeClock
from exam_app.core.services.periodic_task import PeriodicTask
from exam_app.core.services.timer_coordinator import (
    TimeLevel,
    TimerCoordinator,
    format_remaining,
    remaining_from_start,
)


def test_ticks_report_remaining_and_fire_one_timeout():
    ticks: list[int] = []
    timeouts: list[bool] = []
    timer = TimerCoordinator(3, 3, on_tick=ticks.append, on_timeout=lambda: timeouts.append(True))
    timer.start(background=False)

    assert timer.tick() is True
    assert timer.tick() is True
    assert timer.tick() is False
    assert timer.tick() is False

    assert ticks == [2, 1, 0]
    assert timeouts == [True]
    assert timer.timed_out


def test_starting_an_expired_timer_times_out_immediately():
    timeouts: list[bool] = []
    timer = TimerCoordinator(60, 0, on_timeout=lambda: timeouts.append(True))
    timer.start(background=False)
    assert timeouts == [True]


def test_stopped_timer_never_fires():
    timeouts: list[bool] = []
    timer = TimerCoordinator(60, 1, on_timeout=lambda: timeouts.append(True))
    timer.stop()
    assert timer.tick() is False
    assert timeouts == []


def test_resync_only_removes_time():
    timer = TimerCoordinator(600, 300)
    timer.resync(400)
    assert timer.remaining == 300
    timer.resync(120)
    assert timer.remaining == 120


def test_resync_to_zero_fires_timeout():
    timeouts: list[bool] = []
    timer = TimerCoordinator(600, 300, on_timeout=lambda: timeouts.append(True))
    timer.resync(0)
    assert timeouts == [True]


def test_warning_levels_follow_duration_fractions():
    assert TimerCoordinator(100, 50).level() is TimeLevel.NORMAL
    assert TimerCoordinator(100, 25).level() is TimeLevel.CAUTION
    assert TimerCoordinator(100, 10).is_warning()
    assert TimerCoordinator(100, 0).level() is TimeLevel.EXPIRED


def test_remaining_from_start_after_ten_minutes():
    clock = FakeClock()
    started = clock()
    clock.advance(600.4)
    assert remaining_from_start(started, 30, clock()) == 30 * 60 - 600


def test_remaining_from_start_is_clamped():
    clock = FakeClock()
    started = clock()
    assert remaining_from_start(started, 5, started + timedelta(hours=2)) == 0
    # A start timestamp in the future (clock skew) never grants extra time.
    assert remaining_from_start(started, 5, started - timedelta(minutes=3)) == 300


def test_format_remaining():
    assert format_remaining(65) == "1:05"
    assert format_remaining(3725) == "1:02:05"
    assert format_remaining(-4) == "0:00"


def test_periodic_task_stops_when_callback_returns_false():
    calls: list[int] = []
    finished = Event()

    def callback() -> bool:
        calls.append(1)
        if len(calls) == 3:
            finished.set()
            return False
        return True

    task = PeriodicTask(0.01, callback, name="test-loop")
    task.start()
    assert finished.wait(2.0)
    task.stop()
    assert len(calls) == 3
    assert not task.is_running()


def test_periodic_task_keeps_running_after_a_failure():
    calls: list[int] = []
    recovered = Event()

    def callback() -> bool:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        recovered.set()
        return False

    task = PeriodicTask(0.01, callback, name="flaky-loop")
    task.start()
    assert recovered.wait(2.0)
    task.stop()
