from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import CLASSROOM, STUDENT, make_mixed_test, make_quick_test
from exam_app.core.errors import InvalidManualScore
from exam_app.core.models import Question, QuestionType, SubmissionStatus, Test

IDS = (CLASSROOM, "test-mixed", STUDENT)


@pytest.fixture
def submitted(controller, store):
    controller.start(*IDS, "Ada")
    controller.record_answer(*IDS, "q-short", "water")
    controller.record_answer(*IDS, "q-long", "Because of the water cycle.")
    controller.submit(*IDS)
    return store.find_submission(*IDS)


def test_submit_seeds_feedback_for_auto_graded_questions_only(submitted):
    assert submitted.score == 2
    assert set(submitted.question_feedback) == {"q-short"}


def test_grading_long_question_marks_submission_graded(reconciler, store, submitted, clock):
    clock.advance(3600)
    outcome = reconciler.grade_question(make_mixed_test(), submitted, "q-long", 7, "Good reasoning")

    assert outcome.saved
    stored = store.find_submission(*IDS)
    assert stored.status is SubmissionStatus.GRADED
    assert stored.score == 9
    assert stored.manual_graded_score == 9
    assert stored.auto_graded_score == 2
    assert stored.graded_at == clock()
    assert stored.question_feedback["q-long"].feedback == "Good reasoning"
    assert not stored.question_feedback["q-long"].is_correct


def test_sequential_grades_keep_earlier_entries(reconciler, store, submitted):
    test = make_mixed_test()
    reconciler.grade_question(test, submitted, "q-match", 4)
    # The second edit is made with a stale copy of the submission.
    outcome = reconciler.grade_question(test, submitted, "q-long", 10)

    stored = store.find_submission(*IDS)
    assert set(stored.question_feedback) == {"q-short", "q-match", "q-long"}
    assert stored.question_feedback["q-match"].is_correct
    assert stored.score == 16
    assert outcome.submission.score == 16


def test_manual_override_of_auto_graded_question(reconciler, store, submitted):
    reconciler.grade_question(make_mixed_test(), submitted, "q-short", 0, "Needs a full sentence")
    assert store.find_submission(*IDS).score == 0


@pytest.mark.parametrize("score", [-1, 11, 2.5, True])
def test_out_of_range_score_is_rejected(reconciler, store, submitted, score):
    with pytest.raises(InvalidManualScore):
        reconciler.grade_question(make_mixed_test(), submitted, "q-long", score)
    assert store.find_submission(*IDS).status is SubmissionStatus.SUBMITTED


def test_invalid_score_is_also_a_value_error(reconciler, submitted):
    with pytest.raises(ValueError):
        reconciler.grade_question(make_mixed_test(), submitted, "q-short", 3)


def test_unknown_question_is_rejected(reconciler, submitted):
    with pytest.raises(ValueError):
        reconciler.grade_question(make_mixed_test(), submitted, "q-missing", 1)


def test_in_progress_attempt_cannot_be_graded(controller, store, reconciler):
    controller.start(*IDS, "Ada")
    in_progress = store.find_submission(*IDS)
    with pytest.raises(ValueError):
        reconciler.grade_question(make_mixed_test(), in_progress, "q-long", 5)


def test_store_failure_is_reported(reconciler, records, store, submitted):
    records.failing_updates = 1
    outcome = reconciler.grade_question(make_mixed_test(), submitted, "q-long", 5)

    assert not outcome.saved
    assert outcome.message == "Failed to update question score."
    assert outcome.submission is submitted
    assert store.find_submission(*IDS).status is SubmissionStatus.SUBMITTED


def test_lone_long_question_graded_to_seven(controller, store, reconciler):
    essay = Test(
        id="essay",
        classroom_id=CLASSROOM,
        title="Essay",
        duration=20,
        questions=[Question(id="q-essay", type=QuestionType.LONG, text="Discuss.", marks=10, order=0)],
    )
    store.save_test(essay)
    ids = (CLASSROOM, "essay", STUDENT)
    controller.start(*ids, "Ada")
    controller.record_answer(*ids, "q-essay", "An essay.")
    controller.submit(*ids)

    submitted = store.find_submission(*ids)
    assert submitted.score == 0
    assert submitted.max_score == 10
    assert submitted.question_feedback == {}

    outcome = reconciler.grade_question(essay, submitted, "q-essay", 7)

    assert outcome.saved
    stored = store.find_submission(*ids)
    assert stored.score == 7
    assert stored.manual_graded_score == 7
    assert stored.status is SubmissionStatus.GRADED


def test_grading_with_another_test_is_rejected(reconciler, store, submitted):
    with pytest.raises(ValueError):
        reconciler.grade_question(make_quick_test(), submitted, "q-mcq", 1)
    assert store.find_submission(*IDS).status is SubmissionStatus.SUBMITTED


def test_grading_a_record_that_is_not_the_current_one_is_rejected(reconciler, store, submitted):
    other = replace(submitted, id="someone-else")
    with pytest.raises(ValueError):
        reconciler.grade_question(make_mixed_test(), other, "q-long", 5)
    assert store.find_submission(*IDS).status is SubmissionStatus.SUBMITTED
