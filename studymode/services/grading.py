"""Deterministic answer checking for objective question types."""

from typing import Any

from studymode.db.models import QuestionType


def _norm(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _answer_key(value: Any) -> Any:
    # True/false keys arrive as booleans from some models and as "true"/"false" from clients
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _blank_matches(answer: Any, expected: Any) -> list[bool]:
    if not isinstance(answer, list) or not isinstance(expected, list):
        return []
    return [
        i < len(answer) and isinstance(answer[i], str) and _norm(answer[i]) == _norm(e)
        for i, e in enumerate(expected)
    ]


def check_answer(question_type: str, answer: Any, correct_answer: Any) -> bool:
    """
    All-or-nothing check used for inline questions and lesson questions.

    Long answers are never auto-correct here; they go through AI grading.
    """
    if question_type in (QuestionType.MULTIPLE_CHOICE.value, QuestionType.TRUE_FALSE.value):
        return _answer_key(answer) == _answer_key(correct_answer)

    if question_type == QuestionType.MULTIPLE_SELECT.value:
        if not isinstance(answer, list) or not isinstance(correct_answer, list):
            return False
        return sorted(map(str, answer)) == sorted(map(str, correct_answer))

    if question_type == QuestionType.SHORT_ANSWER.value:
        if not isinstance(answer, str):
            return False
        if isinstance(correct_answer, list):
            return any(_norm(answer) == _norm(c) for c in correct_answer)
        return isinstance(correct_answer, str) and _norm(answer) == _norm(correct_answer)

    if question_type == QuestionType.FILL_BLANK.value:
        if not isinstance(answer, list) or not isinstance(correct_answer, list):
            return False
        return len(answer) == len(correct_answer) and all(_blank_matches(answer, correct_answer))

    return False


def score_objective_answer(question: dict[str, Any], answer: Any) -> tuple[bool, float]:
    """
    Score an assessment answer for the objective types.

    Returns (is_correct, points_earned). Fill-in-the-blank earns partial
    credit per blank; the other types are all or nothing.
    """
    points = float(question.get("points") or 1)
    question_type = question.get("type")
    correct_answer = question.get("correctAnswer")

    if question_type == QuestionType.FILL_BLANK.value:
        matches = _blank_matches(answer or [], correct_answer)
        if not matches:
            return False, 0.0
        earned = sum(matches) / len(matches) * points
        return earned == points, earned

    is_correct = check_answer(question_type, answer, correct_answer)
    return is_correct, points if is_correct else 0.0


def score_percentage(earned: float, total: float) -> int:
    if total <= 0:
        return 0
    return round(earned / total * 100)
