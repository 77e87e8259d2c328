"""Typed access to test and submission records on top of a RecordStore."""

from __future__ import annotations

import logging
from threading import Event
from typing import Any, Callable

from exam_app.constants.session_constants import TEST_SNAPSHOT_TIMEOUT_SECONDS
from exam_app.constants.store_constants import submissions_collection, tests_collection
from exam_app.core.errors import PersistenceFailure, TestUnavailable
from exam_app.core.models import Test, TestSubmission
from exam_app.core.record_store import Record, RecordStore, Unsubscribe

logger = logging.getLogger(__name__)


class SubmissionStore:
    """Reads and writes ``Test`` and ``TestSubmission`` records.

    Every failure raised by the underlying store is re-raised as
    :class:`PersistenceFailure` so callers only handle one error type.
    """

    def __init__(self, records: RecordStore, snapshot_timeout: float = TEST_SNAPSHOT_TIMEOUT_SECONDS) -> None:
        self._records = records
        self._snapshot_timeout = snapshot_timeout

    @property
    def records(self) -> RecordStore:
        return self._records

    def load_test(self, classroom_id: str, test_id: str) -> Test:
        """Return the current snapshot of a test record, read through a subscription."""
        received = Event()
        snapshot: list[Record | None] = []

        def capture(record: Record | None) -> None:
            if not received.is_set():
                snapshot.append(record)
                received.set()

        unsubscribe = self._call(self._records.subscribe, tests_collection(classroom_id), test_id, capture)
        try:
            if not received.wait(self._snapshot_timeout):
                raise PersistenceFailure(f"Timed out waiting for test {test_id!r}")
        finally:
            unsubscribe()
        record = snapshot[0]
        if record is None:
            raise TestUnavailable(f"Test {test_id!r} does not exist.")
        return Test.from_record(record)

    def save_test(self, test: Test) -> str:
        return self._call(self._records.create, tests_collection(test.classroom_id), test.to_record())

    def find_submission(self, classroom_id: str, test_id: str, student_id: str) -> TestSubmission | None:
        """Return the student's submission for a test, if one exists."""
        records = self._call(
            self._records.query,
            submissions_collection(classroom_id),
            {"testId": test_id, "studentId": student_id},
        )
        if not records:
            return None
        if len(records) > 1:
            logger.warning(
                "Found %d submissions for student %s on test %s; using the earliest",
                len(records),
                student_id,
                test_id,
            )
        records.sort(key=lambda r: r["startedAt"])
        return TestSubmission.from_record(records[0])

    def list_submissions(self, classroom_id: str, test_id: str) -> list[TestSubmission]:
        records = self._call(self._records.query, submissions_collection(classroom_id), {"testId": test_id})
        return [TestSubmission.from_record(record) for record in records]

    def create_submission(self, submission: TestSubmission) -> str:
        record = submission.to_record()
        record.pop("id", None)
        return self._call(self._records.create, submissions_collection(submission.classroom_id), record)

    def update_submission(self, classroom_id: str, submission_id: str, changes: dict[str, Any]) -> None:
        self._call(self._records.update, submissions_collection(classroom_id), submission_id, changes)

    @staticmethod
    def _call(operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return operation(*args)
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"Record store call failed: {exc}") from exc
