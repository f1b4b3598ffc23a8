"""Tests for deterministic answer checking."""

import pytest

from studymode.services.grading import check_answer, score_objective_answer, score_percentage


@pytest.mark.parametrize(
    "question_type, answer, correct, expected",
    [
        ("multiple_choice", "b", "b", True),
        ("multiple_choice", "a", "b", False),
        ("true_false", "true", True, True),
        ("true_false", False, "false", True),
        ("true_false", "true", "false", False),
        ("multiple_select", ["c", "a"], ["a", "c"], True),
        ("multiple_select", ["a"], ["a", "c"], False),
        ("multiple_select", "a", ["a"], False),
        ("short_answer", "  Mitochondria ", "mitochondria", True),
        ("short_answer", "ATP", ["adenosine triphosphate", "atp"], True),
        ("short_answer", "ADP", ["atp"], False),
        ("short_answer", ["atp"], "atp", False),
        ("fill_blank", ["S", "g2"], ["s", "G2"], True),
        ("fill_blank", ["S"], ["s", "G2"], False),
        ("fill_blank", ["S", "M"], ["s", "G2"], False),
        ("long_answer", "anything", "anything", False),
        ("essay", "x", "x", False),
    ],
)
def test_check_answer(question_type, answer, correct, expected):
    assert check_answer(question_type, answer, correct) is expected


def test_fill_blank_partial_credit():
    question = {"type": "fill_blank", "correctAnswer": ["G1", "S", "G2", "M"], "points": 2}

    is_correct, earned = score_objective_answer(question, ["g1", "s", "x", "y"])

    assert is_correct is False
    assert earned == 1.0


def test_fill_blank_all_correct():
    question = {"type": "fill_blank", "correctAnswer": ["G1", "S"], "points": 2}

    assert score_objective_answer(question, ["G1", "s"]) == (True, 2.0)


def test_objective_answer_defaults_to_one_point():
    assert score_objective_answer({"type": "multiple_choice", "correctAnswer": "a"}, "a") == (True, 1.0)
    assert score_objective_answer({"type": "multiple_choice", "correctAnswer": "a"}, "b") == (False, 0.0)


def test_missing_fill_blank_answer_scores_zero():
    question = {"type": "fill_blank", "correctAnswer": ["G1"], "points": 1}

    assert score_objective_answer(question, None) == (False, 0.0)


@pytest.mark.parametrize("earned, total, expected", [(3, 4, 75), (2, 3, 67), (0, 5, 0), (1, 0, 0)])
def test_score_percentage(earned, total, expected):
    assert score_percentage(earned, total) == expected
