"""Merges a teacher's per-question grading into a submission's total."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable

from exam_app.core.errors import InvalidManualScore, PersistenceFailure
from exam_app.core.models import QuestionFeedback, SubmissionStatus, Test, TestSubmission, utc_now
from exam_app.core.submission_store import SubmissionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GradeOutcome:
    saved: bool
    submission: TestSubmission
    message: str | None = None


class ManualGradingReconciler:
    """Applies manual scores one question at a time.

    The first manual edit replaces ``score`` with the sum of all recorded
    question feedback, so questions nobody has scored yet (long answers in
    particular) count as 0 until a teacher grades them.
    """

    def __init__(self, store: SubmissionStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def grade_question(
        self,
        test: Test,
        submission: TestSubmission,
        question_id: str,
        score: int,
        feedback: str = "",
    ) -> GradeOutcome:
        if test.id != submission.test_id:
            raise ValueError(f"Submission {submission.id!r} belongs to test {submission.test_id!r}, not {test.id!r}.")
        question = test.get_question(question_id)
        if question is None:
            raise ValueError(f"Question {question_id!r} is not part of test {test.id!r}.")
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= question.marks:
            raise InvalidManualScore(f"Score for {question_id!r} must be between 0 and {question.marks}.")
        try:
            latest = self._store.find_submission(submission.classroom_id, submission.test_id, submission.student_id)
            if latest is None:
                raise PersistenceFailure(f"Submission {submission.id!r} no longer exists.")
            if latest.id != submission.id:
                raise ValueError(f"Submission {submission.id!r} is not the student's current record {latest.id!r}.")
            if latest.status is SubmissionStatus.IN_PROGRESS:
                raise ValueError("Only submitted attempts can be graded.")
            merged = dict(latest.question_feedback)
            merged[question_id] = QuestionFeedback(
                score=score,
                max_score=question.marks,
                is_correct=score == question.marks,
                feedback=feedback,
            )
            total = sum(entry.score for entry in merged.values())
            now = self._clock()
            changes = {
                "questionFeedback": {qid: entry.to_record() for qid, entry in merged.items()},
                "manualGradedScore": total,
                "score": total,
                "status": SubmissionStatus.GRADED.value,
                "gradedAt": now,
            }
            self._store.update_submission(latest.classroom_id, latest.id, changes)
        except PersistenceFailure as exc:
            logger.error("Saving grade for %s on submission %s failed: %s", question_id, submission.id, exc)
            return GradeOutcome(saved=False, submission=submission, message="Failed to update question score.")

        record = latest.to_record()
        record.update(changes)
        graded = TestSubmission.from_record(record)
        logger.info(
            "Graded question %s on submission %s: %d/%d, total %d/%d",
            question_id,
            graded.id,
            score,
            question.marks,
            graded.score,
            graded.max_score,
        )
        return GradeOutcome(saved=True, submission=graded)
