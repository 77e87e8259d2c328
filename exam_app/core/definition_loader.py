"""Utilities for importing tests from the JSON records produced by the generator.

File format: a single JSON object in the persisted ``Test`` record shape.

    {
      "id": "algebra-1",
      "classroomId": "room-7",
      "title": "Linear equations",
      "duration": 30,
      "isActive": true,
      "questions": [
        {"id": "q1", "type": "mcq", "text": "Solve $2x = 4$", "marks": 2,
         "options": ["1", "2", "4"], "correctAnswer": "2"},
        {"id": "q2", "type": "long", "text": "Explain your method.", "marks": 5}
      ]
    }

``order`` and ``totalMarks`` may be omitted: questions are then numbered in
file order and the total is computed. When present they must satisfy the test
invariants.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any

from exam_app.core.errors import InvalidTestDefinition
from exam_app.core.models import Test


class TestImportError(Exception):
    """Raised when a test definition cannot be parsed."""

    __test__ = False


@dataclass(slots=True)
class ImportedTest:
    """Container for imported test metadata."""

    source_path: Path
    test: Test


def load_test_from_file(file_path: Path, classroom_id: str | None = None) -> ImportedTest:
    text = file_path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TestImportError(f"Test file is not valid JSON: {exc}") from exc
    return ImportedTest(source_path=file_path, test=parse_test_record(payload, classroom_id))


def parse_test_record(payload: Any, classroom_id: str | None = None) -> Test:
    if not isinstance(payload, dict):
        raise TestImportError("Test definition must be a JSON object.")
    questions = payload.get("questions")
    if not isinstance(questions, list) or not questions:
        raise TestImportError("Test definition did not contain any questions.")

    record = dict(payload)
    if classroom_id is not None:
        record["classroomId"] = classroom_id
    record["questions"] = [_with_order(q, index) for index, q in enumerate(questions)]
    try:
        return Test.from_record(record)
    except InvalidTestDefinition as exc:
        raise TestImportError(str(exc)) from exc


def _with_order(question: Any, index: int) -> dict[str, Any]:
    if not isinstance(question, dict):
        raise TestImportError(f"Question #{index + 1} must be a JSON object.")
    prepared = dict(question)
    prepared.setdefault("order", index)
    prepared.setdefault("id", f"q{index + 1}")
    return prepared
