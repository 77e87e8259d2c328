"""In-memory state of one student's attempt at one test."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any

from exam_app.core.errors import SessionAlreadySubmitted
from exam_app.core.models import SubmissionStatus, Test, TestSubmission
from exam_app.core.services.scoring_engine import ScoreResult
from exam_app.core.services.timer_coordinator import elapsed_seconds, remaining_from_start


@dataclass(slots=True, frozen=True)
class AttemptKey:
    classroom_id: str
    test_id: str
    student_id: str

    def __str__(self) -> str:
        return f"{self.classroom_id}/{self.test_id}/{self.student_id}"


class AttemptSession:
    """Tracks answers and status of an attempt between store writes.

    ``write_lock`` serializes the store writes of this attempt (auto-save and
    submit) so a delayed auto-save never lands after the submit.
    """

    def __init__(self, key: AttemptKey, test: Test, submission: TestSubmission) -> None:
        self.key = key
        self.test = test
        self.write_lock = Lock()
        self._lock = Lock()
        self._submission = submission
        self._answers: dict[str, Any] = dict(submission.answers)

    @property
    def submission_id(self) -> str:
        return self._submission.id

    @property
    def started_at(self) -> datetime:
        return self._submission.started_at

    @property
    def submitted_at(self) -> datetime | None:
        with self._lock:
            return self._submission.submitted_at

    @property
    def status(self) -> SubmissionStatus:
        with self._lock:
            return self._submission.status

    def is_in_progress(self) -> bool:
        return self.status is SubmissionStatus.IN_PROGRESS

    def record_answer(self, question_id: str, answer: Any) -> None:
        if self.test.get_question(question_id) is None:
            raise ValueError(f"Question {question_id!r} is not part of test {self.test.id!r}.")
        with self._lock:
            if self._submission.status.is_final:
                raise SessionAlreadySubmitted("Answers cannot change after the test was submitted.")
            self._answers[question_id] = answer

    def get_answers(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._answers)

    def answered_count(self) -> int:
        with self._lock:
            return sum(1 for q in self.test.questions if q.id in self._answers)

    def remaining_seconds(self, now: datetime) -> int:
        if not self.is_in_progress():
            return 0
        return remaining_from_start(self.started_at, self.test.duration, now)

    def time_spent(self, now: datetime) -> int:
        """Seconds between start and ``now``, clamped to the test duration."""
        return max(0, min(self.test.duration_seconds, elapsed_seconds(self.started_at, now)))

    def build_submit_changes(self, answers: dict[str, Any], result: ScoreResult, now: datetime) -> dict[str, Any]:
        """Partial record written by the submit transition."""
        feedback = {qid: score.to_feedback().to_record() for qid, score in result.per_question.items()}
        return {
            "answers": dict(answers),
            "autoGradedScore": result.auto_score,
            "score": result.auto_score,
            "questionFeedback": feedback,
            "timeSpent": self.time_spent(now),
            "submittedAt": now,
            "status": SubmissionStatus.SUBMITTED.value,
        }

    def mark_submitted(self, submission: TestSubmission) -> None:
        """Adopt the stored record once it has left ``in_progress``."""
        with self._lock:
            self._submission = submission
            self._answers = dict(submission.answers)

    def snapshot(self) -> TestSubmission:
        with self._lock:
            record = self._submission.to_record()
            record["answers"] = dict(self._answers)
        return TestSubmission.from_record(record)
