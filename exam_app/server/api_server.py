"""FastAPI server exposing test-taking and grading endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
import uvicorn

from exam_app.constants.about import APP_NAME, APP_VERSION
from exam_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from exam_app.core.errors import (
    InvalidManualScore,
    PersistenceFailure,
    SessionAlreadySubmitted,
    SessionNotStarted,
    SessionTimeExpired,
    TestUnavailable,
)
from exam_app.core.markdown_math_renderer import renderer
from exam_app.core.models import TestSubmission
from exam_app.core.services.grading_reconciler import ManualGradingReconciler
from exam_app.core.services.results_board import ResultsBoard, score_band, score_percentage
from exam_app.core.session_controller import SessionController, StartStatus, SubmitStatus
from exam_app.core.submission_store import SubmissionStore


class StartPayload(BaseModel):
    """Payload schema for starting or resuming an attempt."""

    student_id: str = Field(min_length=1)
    student_name: str = ""


class AnswerPayload(BaseModel):
    """Payload schema for a single answer; the value shape depends on the question type."""

    answer: str | list[str] | dict[str, str] | None


class GradePayload(BaseModel):
    """Payload schema for a teacher's manual grade of one question."""

    question_id: str
    score: int
    feedback: str = ""


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.astimezone(timezone.utc).isoformat()


def _submission_payload(submission: TestSubmission | None) -> dict[str, Any] | None:
    if submission is None:
        return None
    record = submission.to_record()
    record["startedAt"] = _iso(submission.started_at)
    record["submittedAt"] = _iso(submission.submitted_at)
    record["gradedAt"] = _iso(submission.graded_at)
    percentage = score_percentage(submission.score, submission.max_score)
    record["percentage"] = round(percentage)
    record["band"] = score_band(percentage)
    return record


def _get_dependency(instance: Any):
    def dependency() -> Any:
        return instance

    return dependency


def create_api_app(
    controller: SessionController,
    store: SubmissionStore,
    reconciler: ManualGradingReconciler,
) -> FastAPI:
    """Create a FastAPI application wired to the provided session controller."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    controller_dep = _get_dependency(controller)
    store_dep = _get_dependency(store)
    reconciler_dep = _get_dependency(reconciler)

    @app.get("/classrooms/{classroom_id}/tests/{test_id}")
    def get_test(classroom_id: str, test_id: str, submissions: SubmissionStore = Depends(store_dep)) -> dict[str, Any]:
        try:
            test = submissions.load_test(classroom_id, test_id)
        except TestUnavailable as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return renderer.render_test(test)

    @app.post("/classrooms/{classroom_id}/tests/{test_id}/sessions")
    def start_session(
        classroom_id: str,
        test_id: str,
        payload: StartPayload,
        manager: SessionController = Depends(controller_dep),
    ) -> dict[str, Any]:
        try:
            outcome = manager.start(classroom_id, test_id, payload.student_id, payload.student_name)
        except TestUnavailable as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if outcome.status is StartStatus.FAILED:
            raise HTTPException(status_code=503, detail=outcome.message)
        return {
            "status": outcome.status.value,
            "remaining_seconds": outcome.remaining_seconds,
            "redirect_to_results": outcome.status is StartStatus.ALREADY_SUBMITTED,
            "submission": _submission_payload(outcome.submission),
        }

    @app.get("/classrooms/{classroom_id}/tests/{test_id}/sessions/{student_id}")
    def get_session(
        classroom_id: str,
        test_id: str,
        student_id: str,
        manager: SessionController = Depends(controller_dep),
    ) -> dict[str, Any]:
        try:
            view = manager.session_view(classroom_id, test_id, student_id)
        except SessionNotStarted as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {
            "status": view.status.value,
            "remaining_seconds": view.remaining_seconds,
            "remaining_display": view.formatted_remaining,
            "total_seconds": view.total_seconds,
            "answered": view.answered,
            "total_questions": view.total_questions,
            "time_level": view.level.value,
        }

    @app.put("/classrooms/{classroom_id}/tests/{test_id}/sessions/{student_id}/answers/{question_id}")
    def put_answer(
        classroom_id: str,
        test_id: str,
        student_id: str,
        question_id: str,
        payload: AnswerPayload,
        manager: SessionController = Depends(controller_dep),
    ) -> dict[str, Any]:
        try:
            manager.record_answer(classroom_id, test_id, student_id, question_id, payload.answer)
        except SessionNotStarted as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except (SessionAlreadySubmitted, SessionTimeExpired) as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"question_id": question_id, "saved_locally": True}

    @app.post("/classrooms/{classroom_id}/tests/{test_id}/sessions/{student_id}/submit")
    def submit_session(
        classroom_id: str,
        test_id: str,
        student_id: str,
        manager: SessionController = Depends(controller_dep),
    ) -> dict[str, Any]:
        try:
            outcome = manager.submit(classroom_id, test_id, student_id)
        except SessionNotStarted as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if outcome.status is SubmitStatus.FAILED:
            raise HTTPException(status_code=503, detail=outcome.message)
        return {
            "status": outcome.status.value,
            "submission": _submission_payload(outcome.submission),
        }

    @app.delete("/classrooms/{classroom_id}/tests/{test_id}/sessions/{student_id}", status_code=204)
    def close_session(
        classroom_id: str,
        test_id: str,
        student_id: str,
        manager: SessionController = Depends(controller_dep),
    ) -> None:
        manager.close(classroom_id, test_id, student_id)

    @app.post("/classrooms/{classroom_id}/tests/{test_id}/submissions/{student_id}/grades")
    def grade_question(
        classroom_id: str,
        test_id: str,
        student_id: str,
        payload: GradePayload,
        submissions: SubmissionStore = Depends(store_dep),
        grader: ManualGradingReconciler = Depends(reconciler_dep),
    ) -> dict[str, Any]:
        try:
            test = submissions.load_test(classroom_id, test_id)
            submission = submissions.find_submission(classroom_id, test_id, student_id)
        except TestUnavailable as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if submission is None:
            raise HTTPException(status_code=404, detail="Submission not found")
        try:
            outcome = grader.grade_question(test, submission, payload.question_id, payload.score, payload.feedback)
        except InvalidManualScore as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not outcome.saved:
            raise HTTPException(status_code=503, detail=outcome.message)
        return {"submission": _submission_payload(outcome.submission)}

    @app.get("/classrooms/{classroom_id}/tests/{test_id}/results")
    def get_results(
        classroom_id: str,
        test_id: str,
        limit: int = 3,
        submissions: SubmissionStore = Depends(store_dep),
    ) -> dict[str, Any]:
        try:
            board = ResultsBoard(submissions.list_submissions(classroom_id, test_id))
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        summary = board.summarize()
        return {
            "summary": {
                "total_submissions": summary.total_submissions,
                "average_percentage": summary.average_percentage,
                "highest_percentage": summary.highest_percentage,
                "lowest_percentage": summary.lowest_percentage,
                "pending_grading": summary.pending_grading,
            },
            "top_scorers": [
                {"student_name": row.student_name, "score": row.score, "max_score": row.max_score}
                for row in board.get_top_scorers(limit)
            ],
            "rows": [
                {
                    "student_id": row.student_id,
                    "student_name": row.student_name,
                    "score": row.score,
                    "max_score": row.max_score,
                    "percentage": row.percentage,
                    "band": score_band(row.percentage),
                    "time_spent": row.time_spent,
                    "status": row.status.value,
                }
                for row in board.rows()
            ],
        }

    return app


def run_api_server(
    controller: SessionController,
    store: SubmissionStore,
    reconciler: ManualGradingReconciler,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API in the current thread until interrupted."""
    app = create_api_app(controller, store, reconciler)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    try:
        server.run()
    finally:
        controller.shutdown()
