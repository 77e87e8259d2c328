"""Class-wide statistics and rankings over test submissions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from exam_app.core.models import SubmissionStatus, TestSubmission

_SCORE_BANDS: tuple[tuple[float, str], ...] = (
    (90.0, "Excellent"),
    (70.0, "Good"),
    (50.0, "Average"),
)
_LOWEST_BAND = "Needs Improvement"


@dataclass(slots=True, frozen=True)
class ResultsSummary:
    """Immutable snapshot returned to consumers."""

    total_submissions: int
    average_percentage: int
    highest_percentage: int
    lowest_percentage: int
    pending_grading: int


@dataclass(slots=True)
class ResultsRow:
    student_id: str
    student_name: str
    score: int
    max_score: int
    percentage: int
    time_spent: int
    status: SubmissionStatus


def score_percentage(score: int, max_score: int) -> float:
    if max_score <= 0:
        return 0.0
    return score / max_score * 100


def score_band(percentage: float) -> str:
    for threshold, label in _SCORE_BANDS:
        if percentage >= threshold:
            return label
    return _LOWEST_BAND


class ResultsBoard:
    """Summarizes the finished submissions of one test."""

    def __init__(self, submissions: Iterable[TestSubmission]) -> None:
        # Attempts still in progress have no score yet.
        self._submissions = [s for s in submissions if s.status.is_final]

    def summarize(self) -> ResultsSummary:
        if not self._submissions:
            return ResultsSummary(0, 0, 0, 0, 0)
        percentages = [score_percentage(s.score, s.max_score) for s in self._submissions]
        return ResultsSummary(
            total_submissions=len(self._submissions),
            average_percentage=round(sum(percentages) / len(percentages)),
            highest_percentage=round(max(percentages)),
            lowest_percentage=round(min(percentages)),
            pending_grading=sum(1 for s in self._submissions if s.status is SubmissionStatus.SUBMITTED),
        )

    def get_top_scorers(self, limit: int = 3) -> list[ResultsRow]:
        """Return the top N submissions by score, faster attempts first on ties."""
        ordered = sorted(self._submissions, key=lambda s: (-s.score, s.time_spent))
        return [self._to_row(s) for s in ordered[:limit]]

    def rows(self) -> list[ResultsRow]:
        return [self._to_row(s) for s in sorted(self._submissions, key=lambda s: s.student_name.lower())]

    @staticmethod
    def _to_row(submission: TestSubmission) -> ResultsRow:
        return ResultsRow(
            student_id=submission.student_id,
            student_name=submission.student_name,
            score=submission.score,
            max_score=submission.max_score,
            percentage=round(score_percentage(submission.score, submission.max_score)),
            time_spent=submission.time_spent,
            status=submission.status,
        )
