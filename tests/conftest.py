from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from exam_app.core.models import MatchPair, Question, QuestionType, Test
from exam_app.core.record_store import InMemoryRecordStore
from exam_app.core.services.grading_reconciler import ManualGradingReconciler
from exam_app.core.session_controller import SessionController
from exam_app.core.submission_store import SubmissionStore

CLASSROOM = "room-1"
STUDENT = "student-1"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose next N updates (or queries) raise."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_updates = 0
        self.failing_queries = 0
        self.update_calls: list[tuple[str, str, dict]] = []

    def update(self, collection_path, record_id, partial_record):
        self.update_calls.append((collection_path, record_id, dict(partial_record)))
        if self.failing_updates:
            self.failing_updates -= 1
            raise ConnectionError("store unavailable")
        super().update(collection_path, record_id, partial_record)

    def query(self, collection_path, filters=None):
        if self.failing_queries:
            self.failing_queries -= 1
            raise ConnectionError("store unavailable")
        return super().query(collection_path, filters)


def make_quick_test(test_id: str = "test-1", duration: int = 5, is_active: bool = True) -> Test:
    """Two questions: mcq worth 2 (correct "A"), fill worth 3 (correct "Paris")."""
    return Test(
        id=test_id,
        classroom_id=CLASSROOM,
        title="Capitals",
        duration=duration,
        is_active=is_active,
        questions=[
            Question(
                id="q-mcq",
                type=QuestionType.MCQ,
                text="Pick A",
                marks=2,
                order=0,
                options=["A", "B", "C"],
                correct_answer="A",
            ),
            Question(
                id="q-fill",
                type=QuestionType.FILL,
                text="Capital of France?",
                marks=3,
                order=1,
                correct_answer="Paris",
            ),
        ],
    )


def make_mixed_test(test_id: str = "test-mixed") -> Test:
    return Test(
        id=test_id,
        classroom_id=CLASSROOM,
        title="Mixed",
        duration=30,
        questions=[
            Question(
                id="q-match",
                type=QuestionType.MATCH,
                text="Match the pairs",
                marks=4,
                order=0,
                pairs=[
                    MatchPair("France", "Paris"),
                    MatchPair("Italy", "Rome"),
                    MatchPair("Spain", "Madrid"),
                    MatchPair("Japan", "Tokyo"),
                ],
            ),
            Question(id="q-short", type=QuestionType.SHORT, text="H2O is?", marks=2, order=1, correct_answer="Water"),
            Question(id="q-long", type=QuestionType.LONG, text="Discuss.", marks=10, order=2),
        ],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def records() -> FlakyRecordStore:
    return FlakyRecordStore()


@pytest.fixture
def store(records: FlakyRecordStore) -> SubmissionStore:
    submission_store = SubmissionStore(records, snapshot_timeout=0.5)
    submission_store.save_test(make_quick_test())
    submission_store.save_test(make_mixed_test())
    return submission_store


@pytest.fixture
def controller(store: SubmissionStore, clock: FakeClock):
    session_controller = SessionController(store, clock=clock, run_background_tasks=False)
    yield session_controller
    session_controller.shutdown()


@pytest.fixture
def reconciler(store: SubmissionStore, clock: FakeClock) -> ManualGradingReconciler:
    return ManualGradingReconciler(store, clock=clock)
