"""Application entry point for the ExamSession server."""

from __future__ import annotations

import argparse
from pathlib import Path

from exam_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from exam_app.core.definition_loader import TestImportError, load_test_from_file
from exam_app.core.record_store import InMemoryRecordStore
from exam_app.core.services.grading_reconciler import ManualGradingReconciler
from exam_app.core.session_controller import SessionController
from exam_app.core.submission_store import SubmissionStore
from exam_app.server.api_server import run_api_server
from exam_app.utils.logging_config import configure_logging


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve timed classroom tests.")
    parser.add_argument("tests", nargs="*", type=Path, help="JSON test definitions to load at startup")
    parser.add_argument("--classroom", default=None, help="Classroom id overriding the one in each file")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    return parser.parse_args()


def main() -> None:
    """Initialize logging, load test definitions and start the API server."""
    args = _parse_args()
    logger = configure_logging()
    logger.info("Starting ExamSession server…")

    store = SubmissionStore(InMemoryRecordStore())
    for path in args.tests:
        try:
            imported = load_test_from_file(path, classroom_id=args.classroom)
        except (OSError, TestImportError) as exc:
            logger.error("Skipping %s: %s", path, exc)
            continue
        store.save_test(imported.test)
        logger.info(
            "Loaded test %s (%d questions) into classroom %s",
            imported.test.id,
            len(imported.test.questions),
            imported.test.classroom_id,
        )

    controller = SessionController(store)
    reconciler = ManualGradingReconciler(store)
    run_api_server(controller, store, reconciler, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
