"""Objective scoring of submitted answers.

Scoring is a pure function of the questions and the answers: no clock, no
store, no mutation of its inputs. Each auto-gradable question earns its full
marks on an exact match and nothing otherwise.

Per-type policy:

* ``mcq``: the submitted option label must equal the correct label.
* ``fill`` / ``short``: case-insensitive comparison after trimming surrounding
  whitespace. ``short`` answers get the same exact treatment here; nuanced
  evaluation is left to manual grading.
* ``match``: every left item must map to its correct right item. A per-pair
  count is reported for display, but marks are all-or-nothing.
* ``long``: never auto-graded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from exam_app.core.models import Question, QuestionFeedback, QuestionType


@dataclass(slots=True, frozen=True)
class QuestionScore:
    """Outcome of the automatic pass for one answered question."""

    question_id: str
    score: int
    max_score: int
    is_correct: bool
    correct_pairs: int | None = None
    total_pairs: int | None = None

    def to_feedback(self) -> QuestionFeedback:
        return QuestionFeedback(score=self.score, max_score=self.max_score, is_correct=self.is_correct)


@dataclass(slots=True, frozen=True)
class ScoreResult:
    """Totals of the automatic pass.

    ``total_auto_gradable`` sums the marks of the answered questions that could
    be auto-graded. It is informational only; scores are always reported out
    of the test's total marks.
    """

    auto_score: int
    total_auto_gradable: int
    per_question: Mapping[str, QuestionScore] = field(default_factory=dict)


def score_answers(questions: Iterable[Question], answers: Mapping[str, Any]) -> ScoreResult:
    """Score ``answers`` (question id to answer value) against ``questions``."""
    auto_score = 0
    total_auto_gradable = 0
    per_question: dict[str, QuestionScore] = {}

    for question in questions:
        answer = answers.get(question.id)
        if not _has_answer(answer) or not is_auto_gradable(question):
            continue

        correct_pairs: int | None = None
        total_pairs: int | None = None
        if question.type is QuestionType.MATCH:
            correct_pairs, total_pairs = _count_matching_pairs(question, answer)
            is_correct = correct_pairs == total_pairs
        else:
            is_correct = _is_text_answer_correct(question, answer)

        score = question.marks if is_correct else 0
        auto_score += score
        total_auto_gradable += question.marks
        per_question[question.id] = QuestionScore(
            question_id=question.id,
            score=score,
            max_score=question.marks,
            is_correct=is_correct,
            correct_pairs=correct_pairs,
            total_pairs=total_pairs,
        )

    return ScoreResult(
        auto_score=auto_score,
        total_auto_gradable=total_auto_gradable,
        per_question=per_question,
    )


def is_auto_gradable(question: Question) -> bool:
    """Return True when the question has a canonical answer to compare against."""
    if question.type is QuestionType.LONG:
        return False
    if question.type is QuestionType.MATCH:
        return bool(question.correct_mapping())
    return isinstance(question.correct_answer, str)


def normalize_text(value: str) -> str:
    return value.strip().lower()


def _is_text_answer_correct(question: Question, answer: Any) -> bool:
    if not isinstance(answer, str):
        return False
    correct = str(question.correct_answer)
    if question.type is QuestionType.MCQ:
        return answer == correct
    return normalize_text(answer) == normalize_text(correct)


def _count_matching_pairs(question: Question, answer: Any) -> tuple[int, int]:
    expected = question.correct_mapping()
    if not isinstance(answer, Mapping):
        return 0, len(expected)
    correct = sum(1 for left, right in expected.items() if answer.get(left) == right)
    return correct, len(expected)


def _has_answer(answer: Any) -> bool:
    if answer is None:
        return False
    if isinstance(answer, (str, list, tuple, dict)):
        return len(answer) > 0
    return True
