"""Business logic for taking a timed test, shared between the API and the tests.

The controller owns every open attempt, keyed by classroom, test and student.
Identifiers are always passed in explicitly; nothing here looks up a current
user.

Store failures never escape the public methods: start and submit report them
through their outcome objects, auto-save logs them and tries again on the
next interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from threading import Lock
from typing import Any, Callable

from exam_app.constants.session_constants import (
    AUTO_SAVE_INTERVAL_SECONDS,
    FINISHED_SESSION_RETENTION_SECONDS,
    TICK_INTERVAL_SECONDS,
)
from exam_app.core.errors import (
    PersistenceFailure,
    SessionAlreadyStarted,
    SessionAlreadySubmitted,
    SessionNotStarted,
    SessionTimeExpired,
    TestUnavailable,
)
from exam_app.core.models import SubmissionStatus, TestSubmission, utc_now
from exam_app.core.services.attempt_session import AttemptKey, AttemptSession
from exam_app.core.services.periodic_task import PeriodicTask
from exam_app.core.services.scoring_engine import score_answers
from exam_app.core.services.timer_coordinator import TimeLevel, TimerCoordinator, format_remaining, time_level
from exam_app.core.submission_store import SubmissionStore

logger = logging.getLogger(__name__)


class StartStatus(str, Enum):
    STARTED = "started"
    RESUMED = "resumed"
    ALREADY_SUBMITTED = "already_submitted"
    FAILED = "failed"


class SubmitStatus(str, Enum):
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"
    FAILED = "failed"


@dataclass(slots=True)
class StartOutcome:
    status: StartStatus
    submission: TestSubmission | None = None
    remaining_seconds: int = 0
    message: str | None = None


@dataclass(slots=True)
class SubmitOutcome:
    status: SubmitStatus
    submission: TestSubmission | None = None
    auto_submitted: bool = False
    message: str | None = None
    retryable: bool = False


@dataclass(slots=True)
class SessionView:
    """Read-only progress snapshot for the test-taking page."""

    status: SubmissionStatus
    remaining_seconds: int
    total_seconds: int
    answered: int
    total_questions: int
    level: TimeLevel

    @property
    def formatted_remaining(self) -> str:
        return format_remaining(self.remaining_seconds)


class SessionController:
    """Facade over attempt state, timers, auto-save and the submission store."""

    def __init__(
        self,
        store: SubmissionStore,
        clock: Callable[[], datetime] = utc_now,
        auto_save_interval: float = AUTO_SAVE_INTERVAL_SECONDS,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        finished_retention: float = FINISHED_SESSION_RETENTION_SECONDS,
        run_background_tasks: bool = True,
        on_tick: Callable[[AttemptKey, int], None] | None = None,
        on_auto_submit: Callable[[AttemptKey, SubmitOutcome], None] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._auto_save_interval = auto_save_interval
        self._tick_interval = tick_interval
        self._finished_retention = finished_retention
        self._run_background_tasks = run_background_tasks
        self._on_tick = on_tick
        self._on_auto_submit = on_auto_submit

        self._lock = Lock()
        self._start_lock = Lock()
        self._sessions: dict[AttemptKey, AttemptSession] = {}
        self._timers: dict[AttemptKey, TimerCoordinator] = {}
        self._auto_savers: dict[AttemptKey, PeriodicTask] = {}

    # --- Lifecycle ---

    def start(self, classroom_id: str, test_id: str, student_id: str, student_name: str) -> StartOutcome:
        """Start a new attempt, or resume the student's in-progress one."""
        key = AttemptKey(classroom_id, test_id, student_id)
        with self._start_lock:
            self._prune_finished()
            try:
                session, created = self._open_attempt(key, student_name)
            except SessionAlreadyStarted as exc:
                logger.info("Attempt %s is already open; resuming", key)
                session = self._get_session(key)
                if session is None:
                    submission = TestSubmission.from_record(exc.record)
                    return StartOutcome(StartStatus.ALREADY_SUBMITTED, submission=submission)
                created = False
            except PersistenceFailure as exc:
                logger.error("Could not start attempt %s: %s", key, exc)
                return StartOutcome(StartStatus.FAILED, message="Failed to start test. Please try again.")

        if session.status.is_final:
            return StartOutcome(StartStatus.ALREADY_SUBMITTED, submission=session.snapshot())

        remaining = session.remaining_seconds(self._clock())
        self._start_background(session, remaining)
        if not session.is_in_progress():
            # The allowance ran out while the student was away.
            return StartOutcome(StartStatus.ALREADY_SUBMITTED, submission=session.snapshot())

        status = StartStatus.STARTED if created else StartStatus.RESUMED
        logger.info("Attempt %s %s with %ds remaining", key, status.value, remaining)
        return StartOutcome(status, submission=session.snapshot(), remaining_seconds=remaining)

    def close(self, classroom_id: str, test_id: str, student_id: str) -> None:
        """Forget an open attempt and cancel its timer and auto-save loops."""
        key = AttemptKey(classroom_id, test_id, student_id)
        self._stop_background(key)
        with self._lock:
            self._sessions.pop(key, None)

    def shutdown(self) -> None:
        with self._lock:
            keys = list(self._sessions)
        for key in keys:
            self._stop_background(key)

    # --- Answers ---

    def record_answer(self, classroom_id: str, test_id: str, student_id: str, question_id: str, answer: Any) -> None:
        key = AttemptKey(classroom_id, test_id, student_id)
        session = self._require_session(key)
        if not session.is_in_progress():
            raise SessionAlreadySubmitted("This test has already been submitted.")
        if session.remaining_seconds(self._clock()) <= 0:
            self._auto_submit(key)
            raise SessionTimeExpired("Time is up; the test was submitted automatically.")
        session.record_answer(question_id, answer)

    def get_answers(self, classroom_id: str, test_id: str, student_id: str) -> dict[str, Any]:
        return self._require_session(AttemptKey(classroom_id, test_id, student_id)).get_answers()

    def auto_save(self, classroom_id: str, test_id: str, student_id: str) -> bool:
        """Flush the in-memory answers to the store. Returns True when written."""
        key = AttemptKey(classroom_id, test_id, student_id)
        session = self._get_session(key)
        if session is None or not session.is_in_progress():
            return False
        if session.remaining_seconds(self._clock()) <= 0:
            # Past the deadline only a submit may write; a failed one is retried here.
            self._auto_submit(key)
            return False
        if not session.write_lock.acquire(blocking=False):
            logger.debug("Submit in flight for %s; skipping auto-save", key)
            return False
        try:
            if not session.is_in_progress():
                return False
            answers = session.get_answers()
            try:
                stored = self._store.find_submission(key.classroom_id, key.test_id, key.student_id)
                if stored is not None and stored.status.is_final:
                    logger.info("Attempt %s was submitted elsewhere; dropping auto-save", key)
                    session.mark_submitted(stored)
                    stale = True
                else:
                    stale = False
                    self._store.update_submission(key.classroom_id, session.submission_id, {"answers": answers})
            except PersistenceFailure as exc:
                logger.warning(
                    "Auto-save failed for %s; retrying in %.0fs: %s", key, self._auto_save_interval, exc
                )
                return False
        finally:
            session.write_lock.release()

        if stale:
            self._stop_background(key)
            return False

        logger.debug("Auto-saved %d answers for %s", len(answers), key)
        timer = self._get_timer(key)
        if timer is not None:
            timer.resync(session.remaining_seconds(self._clock()))
        return True

    # --- Submit ---

    def submit(self, classroom_id: str, test_id: str, student_id: str, auto: bool = False) -> SubmitOutcome:
        """Score and submit the attempt exactly once.

        Repeated calls, e.g. a stale timer firing after the button, return an
        ``ALREADY_SUBMITTED`` outcome without writing anything.
        """
        key = AttemptKey(classroom_id, test_id, student_id)
        session = self._require_session(key)
        with session.write_lock:
            try:
                self._guard_in_progress(session)
                now = self._clock()
                answers = session.get_answers()
                result = score_answers(session.test.questions, answers)
                changes = session.build_submit_changes(answers, result, now)
                self._store.update_submission(classroom_id, session.submission_id, changes)
            except SessionAlreadySubmitted as exc:
                logger.info("Ignoring duplicate submit for %s: %s", key, exc)
                duplicate = SubmitOutcome(
                    SubmitStatus.ALREADY_SUBMITTED, submission=session.snapshot(), auto_submitted=auto
                )
            except PersistenceFailure as exc:
                logger.error("Submit failed for %s: %s", key, exc)
                return SubmitOutcome(
                    SubmitStatus.FAILED,
                    submission=session.snapshot(),
                    auto_submitted=auto,
                    message="Failed to submit test. Please try again.",
                    retryable=True,
                )
            else:
                duplicate = None
                record = session.snapshot().to_record()
                record.update(changes)
                submitted = TestSubmission.from_record(record)
                session.mark_submitted(submitted)

        self._stop_background(key)
        if duplicate is not None:
            return duplicate
        logger.info(
            "Attempt %s submitted%s: %d/%d",
            key,
            " automatically" if auto else "",
            submitted.score,
            submitted.max_score,
        )
        return SubmitOutcome(SubmitStatus.SUBMITTED, submission=submitted, auto_submitted=auto)

    # --- Timer ---

    def tick(self, classroom_id: str, test_id: str, student_id: str) -> bool:
        """Advance the attempt's countdown by one tick. Returns False once finished."""
        timer = self._get_timer(AttemptKey(classroom_id, test_id, student_id))
        if timer is None:
            return False
        return timer.tick()

    # --- Read-only views ---

    def remaining_seconds(self, classroom_id: str, test_id: str, student_id: str) -> int:
        session = self._require_session(AttemptKey(classroom_id, test_id, student_id))
        return session.remaining_seconds(self._clock())

    def get_submission(self, classroom_id: str, test_id: str, student_id: str) -> TestSubmission:
        return self._require_session(AttemptKey(classroom_id, test_id, student_id)).snapshot()

    def session_view(self, classroom_id: str, test_id: str, student_id: str) -> SessionView:
        session = self._require_session(AttemptKey(classroom_id, test_id, student_id))
        remaining = session.remaining_seconds(self._clock())
        total = session.test.duration_seconds
        return SessionView(
            status=session.status,
            remaining_seconds=remaining,
            total_seconds=total,
            answered=session.answered_count(),
            total_questions=len(session.test.questions),
            level=time_level(remaining, total),
        )

    def has_open_session(self, classroom_id: str, test_id: str, student_id: str) -> bool:
        return self._get_session(AttemptKey(classroom_id, test_id, student_id)) is not None

    # --- Internals ---

    def _open_attempt(self, key: AttemptKey, student_name: str) -> tuple[AttemptSession, bool]:
        open_session = self._get_session(key)
        if open_session is not None and open_session.is_in_progress():
            raise SessionAlreadyStarted(open_session.snapshot().to_record())

        test = self._store.load_test(key.classroom_id, key.test_id)
        submission = self._store.find_submission(key.classroom_id, key.test_id, key.student_id)
        created = False
        if submission is None:
            if not test.is_active:
                raise TestUnavailable(f"Test {test.id!r} is not accepting new attempts.")
            submission = self._create_submission(key, test.total_marks or 0, student_name)
            created = True

        session = AttemptSession(key, test, submission)
        if not submission.status.is_final:
            with self._lock:
                self._sessions[key] = session
        return session, created

    def _create_submission(self, key: AttemptKey, max_score: int, student_name: str) -> TestSubmission:
        submission = TestSubmission(
            id="",
            test_id=key.test_id,
            classroom_id=key.classroom_id,
            student_id=key.student_id,
            student_name=student_name,
            started_at=self._clock(),
            max_score=max_score,
        )
        submission.id = self._store.create_submission(submission)
        return submission

    def _guard_in_progress(self, session: AttemptSession) -> None:
        """Check status locally and in the store right before writing."""
        if not session.is_in_progress():
            raise SessionAlreadySubmitted("Attempt already left in_progress.")
        key = session.key
        stored = self._store.find_submission(key.classroom_id, key.test_id, key.student_id)
        if stored is None:
            raise PersistenceFailure(f"Submission {session.submission_id!r} no longer exists.")
        if stored.status.is_final:
            session.mark_submitted(stored)
            raise SessionAlreadySubmitted(f"Stored submission is already {stored.status.value}.")

    def _start_background(self, session: AttemptSession, remaining: int) -> None:
        key = session.key
        timer = TimerCoordinator(
            total_seconds=session.test.duration_seconds,
            remaining_seconds=remaining,
            on_tick=lambda value: self._handle_tick(key, value),
            on_timeout=lambda: self._auto_submit(key),
            tick_interval=self._tick_interval,
            name=f"ExamTimer[{key}]",
        )
        auto_saver = PeriodicTask(
            self._auto_save_interval,
            lambda: self._auto_save_tick(key),
            name=f"ExamAutoSave[{key}]",
        )
        self._stop_background(key)
        with self._lock:
            self._timers[key] = timer
            self._auto_savers[key] = auto_saver
        if self._run_background_tasks:
            auto_saver.start()
        timer.start(background=self._run_background_tasks)

    def _stop_background(self, key: AttemptKey) -> None:
        with self._lock:
            timer = self._timers.pop(key, None)
            auto_saver = self._auto_savers.pop(key, None)
        if timer is not None:
            timer.stop()
        if auto_saver is not None:
            auto_saver.stop()

    def _prune_finished(self) -> None:
        """Drop attempts submitted longer ago than the retention window."""
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, session in self._sessions.items()
                if session.status.is_final
                and session.submitted_at is not None
                and (now - session.submitted_at).total_seconds() > self._finished_retention
            ]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.debug("Dropped %d finished attempts from memory", len(expired))

    def _auto_save_tick(self, key: AttemptKey) -> bool:
        self.auto_save(key.classroom_id, key.test_id, key.student_id)
        session = self._get_session(key)
        return session is not None and session.is_in_progress()

    def _handle_tick(self, key: AttemptKey, remaining: int) -> None:
        if self._on_tick is not None:
            self._on_tick(key, remaining)

    def _auto_submit(self, key: AttemptKey) -> SubmitOutcome:
        logger.warning("Time is up for %s; submitting automatically", key)
        outcome = self.submit(key.classroom_id, key.test_id, key.student_id, auto=True)
        if outcome.status is SubmitStatus.FAILED:
            logger.error("Automatic submit failed for %s; retrying on the next auto-save", key)
        if self._on_auto_submit is not None:
            self._on_auto_submit(key, outcome)
        return outcome

    def _get_session(self, key: AttemptKey) -> AttemptSession | None:
        with self._lock:
            return self._sessions.get(key)

    def _get_timer(self, key: AttemptKey) -> TimerCoordinator | None:
        with self._lock:
            return self._timers.get(key)

    def _require_session(self, key: AttemptKey) -> AttemptSession:
        session = self._get_session(key)
        if session is None:
            raise SessionNotStarted(f"No open attempt for {key}.")
        return session
