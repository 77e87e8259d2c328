"""Domain models for tests, questions and student submissions.

Every model converts to and from the camelCase record shape persisted in the
record store. The record shape is the external contract shared with the rest
of the classroom application, so ``to_record`` must keep key names and value
types stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from exam_app.constants.session_constants import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    MIN_MCQ_OPTIONS,
)
from exam_app.core.errors import InvalidTestDefinition


class QuestionType(str, Enum):
    MCQ = "mcq"
    FILL = "fill"
    MATCH = "match"
    SHORT = "short"
    LONG = "long"


class SubmissionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"

    @property
    def is_final(self) -> bool:
        return self is not SubmissionStatus.IN_PROGRESS


@dataclass(slots=True, frozen=True)
class MatchPair:
    left: str
    right: str


@dataclass(slots=True)
class Question:
    """A single question inside a test."""

    id: str
    type: QuestionType
    text: str
    marks: int
    order: int
    required: bool = False
    options: list[str] = field(default_factory=list)
    pairs: list[MatchPair] = field(default_factory=list)
    correct_answer: str | dict[str, str] | None = None

    def __post_init__(self) -> None:
        self.type = _coerce_question_type(self.type)
        if isinstance(self.marks, bool) or not isinstance(self.marks, int) or self.marks <= 0:
            raise InvalidTestDefinition(f"Question {self.id!r} must be worth a positive integer of marks.")
        if self.type is QuestionType.MCQ and len(self.options) < MIN_MCQ_OPTIONS:
            raise InvalidTestDefinition(
                f"Multiple-choice question {self.id!r} needs at least {MIN_MCQ_OPTIONS} options."
            )
        if self.type is QuestionType.MATCH and not self.pairs:
            raise InvalidTestDefinition(f"Match question {self.id!r} must define its pairs.")
        if self.type is QuestionType.MATCH:
            if self.correct_answer is not None and not isinstance(self.correct_answer, dict):
                raise InvalidTestDefinition(f"Match question {self.id!r} needs a left-to-right answer mapping.")
        elif self.type is QuestionType.LONG:
            # Long answers are subjective; a canonical answer is never kept.
            self.correct_answer = None
        elif self.correct_answer is not None and not isinstance(self.correct_answer, str):
            raise InvalidTestDefinition(f"Question {self.id!r} needs a single string as its correct answer.")

    def correct_mapping(self) -> dict[str, str]:
        """Return the left-to-right mapping a match question is scored against."""
        if isinstance(self.correct_answer, dict):
            return dict(self.correct_answer)
        return {pair.left: pair.right for pair in self.pairs}

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "text": self.text,
            "marks": self.marks,
            "required": self.required,
            "order": self.order,
        }
        if self.options:
            record["options"] = list(self.options)
        if self.pairs:
            record["pairs"] = [{"left": pair.left, "right": pair.right} for pair in self.pairs]
        if self.correct_answer is not None:
            correct = self.correct_answer
            record["correctAnswer"] = dict(correct) if isinstance(correct, dict) else correct
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Question":
        try:
            return cls(
                id=str(record["id"]),
                type=record["type"],
                text=record.get("text", ""),
                marks=record["marks"],
                order=record["order"],
                required=bool(record.get("required", False)),
                options=list(record.get("options") or []),
                pairs=[MatchPair(left=p["left"], right=p["right"]) for p in record.get("pairs") or []],
                correct_answer=record.get("correctAnswer"),
            )
        except (KeyError, TypeError) as exc:
            raise InvalidTestDefinition(f"Malformed question record: {exc}") from exc


@dataclass(slots=True)
class Test:
    """A timed test owned by a classroom."""

    __test__ = False

    id: str
    classroom_id: str
    title: str
    duration: int
    questions: list[Question]
    total_marks: int | None = None
    is_active: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise InvalidTestDefinition("Test duration must be an integer number of minutes.")
        if not MIN_DURATION_MINUTES <= self.duration <= MAX_DURATION_MINUTES:
            raise InvalidTestDefinition(
                f"Test duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes."
            )
        self.questions = sorted(self.questions, key=lambda q: q.order)
        orders = [question.order for question in self.questions]
        if orders != list(range(len(self.questions))):
            raise InvalidTestDefinition("Question order values must be unique and contiguous from 0.")
        ids = [question.id for question in self.questions]
        if len(set(ids)) != len(ids):
            raise InvalidTestDefinition("Question ids must be unique within a test.")
        marks_sum = sum(question.marks for question in self.questions)
        if self.total_marks is None:
            self.total_marks = marks_sum
        elif self.total_marks != marks_sum:
            raise InvalidTestDefinition(
                f"Test total marks {self.total_marks} do not match the question marks sum {marks_sum}."
            )

    @property
    def duration_seconds(self) -> int:
        return self.duration * 60

    def get_question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "classroomId": self.classroom_id,
            "title": self.title,
            "duration": self.duration,
            "totalMarks": self.total_marks,
            "questions": [question.to_record() for question in self.questions],
            "isActive": self.is_active,
        }
        if self.description is not None:
            record["description"] = self.description
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Test":
        try:
            return cls(
                id=str(record["id"]),
                classroom_id=str(record["classroomId"]),
                title=record.get("title", ""),
                duration=record["duration"],
                questions=[Question.from_record(q) for q in record.get("questions") or []],
                total_marks=record.get("totalMarks"),
                is_active=bool(record.get("isActive", True)),
                description=record.get("description"),
            )
        except (KeyError, TypeError) as exc:
            raise InvalidTestDefinition(f"Malformed test record: {exc}") from exc


@dataclass(slots=True)
class QuestionFeedback:
    """Score and comment recorded for one question of a submission."""

    score: int
    max_score: int
    is_correct: bool
    feedback: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "maxScore": self.max_score,
            "isCorrect": self.is_correct,
            "feedback": self.feedback,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "QuestionFeedback":
        return cls(
            score=record.get("score", 0),
            max_score=record.get("maxScore", 0),
            is_correct=bool(record.get("isCorrect", False)),
            feedback=record.get("feedback") or "",
        )


@dataclass(slots=True)
class TestSubmission:
    """One student's attempt at one test."""

    __test__ = False

    id: str
    test_id: str
    classroom_id: str
    student_id: str
    student_name: str
    started_at: datetime
    max_score: int
    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    answers: dict[str, Any] = field(default_factory=dict)
    submitted_at: datetime | None = None
    time_spent: int = 0
    auto_graded_score: int = 0
    manual_graded_score: int = 0
    score: int = 0
    question_feedback: dict[str, QuestionFeedback] = field(default_factory=dict)
    graded_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "testId": self.test_id,
            "classroomId": self.classroom_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "status": self.status.value,
            "answers": dict(self.answers),
            "startedAt": self.started_at,
            "timeSpent": self.time_spent,
            "autoGradedScore": self.auto_graded_score,
            "manualGradedScore": self.manual_graded_score,
            "score": self.score,
            "maxScore": self.max_score,
            "questionFeedback": {qid: fb.to_record() for qid, fb in self.question_feedback.items()},
        }
        if self.submitted_at is not None:
            record["submittedAt"] = self.submitted_at
        if self.graded_at is not None:
            record["gradedAt"] = self.graded_at
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "TestSubmission":
        feedback = record.get("questionFeedback") or {}
        return cls(
            id=str(record["id"]),
            test_id=str(record["testId"]),
            classroom_id=str(record["classroomId"]),
            student_id=str(record["studentId"]),
            student_name=record.get("studentName") or "",
            started_at=parse_timestamp(record["startedAt"]),
            max_score=record.get("maxScore", 0),
            status=SubmissionStatus(record.get("status", SubmissionStatus.IN_PROGRESS.value)),
            answers=dict(record.get("answers") or {}),
            submitted_at=parse_timestamp(record.get("submittedAt")),
            time_spent=record.get("timeSpent", 0),
            auto_graded_score=record.get("autoGradedScore", 0),
            manual_graded_score=record.get("manualGradedScore", 0),
            score=record.get("score", 0),
            question_feedback={qid: QuestionFeedback.from_record(fb) for qid, fb in feedback.items()},
            graded_at=parse_timestamp(record.get("gradedAt")),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Accept stored datetimes or ISO-8601 strings; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"Unsupported timestamp value: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _coerce_question_type(value: Any) -> QuestionType:
    try:
        return QuestionType(value)
    except ValueError as exc:
        raise InvalidTestDefinition(f"Unknown question type: {value!r}") from exc
