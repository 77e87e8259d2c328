from __future__ import annotations

from conftest import make_mixed_test, make_quick_test
from exam_app.core.models import Question, QuestionType
from exam_app.core.services.scoring_engine import is_auto_gradable, score_answers


def test_mcq_and_fill_full_marks():
    test = make_quick_test()
    result = score_answers(test.questions, {"q-mcq": "A", "q-fill": "paris "})
    assert result.auto_score == 5
    assert result.total_auto_gradable == 5
    assert result.per_question["q-fill"].is_correct


def test_mcq_compares_labels_not_positions():
    forward = Question(id="q", type=QuestionType.MCQ, text="?", marks=1, order=0, options=["A", "B", "C"], correct_answer="B")
    shuffled = Question(id="q", type=QuestionType.MCQ, text="?", marks=1, order=0, options=["C", "B", "A"], correct_answer="B")
    for question in (forward, shuffled):
        assert score_answers([question], {"q": "B"}).auto_score == 1
        assert score_answers([question], {"q": "A"}).auto_score == 0


def test_mcq_is_case_sensitive():
    test = make_quick_test()
    assert score_answers(test.questions, {"q-mcq": "a"}).auto_score == 0


def test_fill_requires_exact_normalized_match():
    test = make_quick_test()
    assert score_answers(test.questions, {"q-fill": "  PARIS\n"}).auto_score == 3
    assert score_answers(test.questions, {"q-fill": "Pariss"}).auto_score == 0


def test_unanswered_questions_are_skipped():
    test = make_quick_test()
    result = score_answers(test.questions, {"q-mcq": "A", "q-fill": ""})
    assert result.auto_score == 2
    assert result.total_auto_gradable == 2
    assert "q-fill" not in result.per_question


def test_match_three_of_four_earns_nothing():
    test = make_mixed_test()
    answer = {"France": "Paris", "Italy": "Rome", "Spain": "Madrid", "Japan": "Kyoto"}
    result = score_answers(test.questions, {"q-match": answer})
    entry = result.per_question["q-match"]
    assert entry.score == 0
    assert not entry.is_correct
    assert (entry.correct_pairs, entry.total_pairs) == (3, 4)


def test_match_all_pairs_correct():
    test = make_mixed_test()
    answer = {"France": "Paris", "Italy": "Rome", "Spain": "Madrid", "Japan": "Tokyo"}
    assert score_answers(test.questions, {"q-match": answer}).auto_score == 4


def test_match_with_non_mapping_answer_is_wrong():
    test = make_mixed_test()
    result = score_answers(test.questions, {"q-match": ["Paris", "Rome"]})
    assert result.per_question["q-match"].correct_pairs == 0


def test_short_is_graded_like_fill():
    test = make_mixed_test()
    assert score_answers(test.questions, {"q-short": " water"}).auto_score == 2
    assert score_answers(test.questions, {"q-short": "It is water"}).auto_score == 0


def test_long_is_never_auto_graded():
    test = make_mixed_test()
    result = score_answers(test.questions, {"q-long": "A thoughtful essay."})
    assert result.auto_score == 0
    assert result.total_auto_gradable == 0
    assert result.per_question == {}
    assert not is_auto_gradable(test.get_question("q-long"))


def test_question_without_canonical_answer_is_not_auto_gradable():
    question = Question(id="q", type=QuestionType.FILL, text="?", marks=2, order=0)
    assert score_answers([question], {"q": "anything"}).total_auto_gradable == 0


def test_scoring_is_deterministic_and_does_not_mutate_inputs():
    test = make_mixed_test()
    answers = {"q-match": {"France": "Paris"}, "q-short": "Water", "q-long": "text"}
    snapshot = {"q-match": {"France": "Paris"}, "q-short": "Water", "q-long": "text"}
    first = score_answers(test.questions, answers)
    second = score_answers(test.questions, answers)
    assert first == second
    assert answers == snapshot
