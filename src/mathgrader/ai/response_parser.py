"""
Shared response parsers for chat providers.

Parses the JSON the grading, verification and feedback prompts ask for,
in a provider-independent way. Field names arrive in camelCase; missing
or malformed values fall back to defaults instead of failing the whole
response.
"""

from typing import Any, Optional

from mathgrader.config.constants import (
    CONFIDENCE_COT_DEFAULT,
    DEFAULT_QUESTION_CONFIDENCE,
)
from mathgrader.core.models import (
    ChainOfThoughtJudgment,
    ParsedFeedback,
    ParsedGradingResponse,
    QuestionResult,
)
from mathgrader.utils.json_extractor import extract_json_from_response

_NULL_STRINGS = {"", "null", "none", "n/a"}


def _as_str(value: Any) -> Optional[str]:
    """Stringify a JSON value; null-like values become None."""
    if value is None:
        return None
    text = str(value).strip()
    return None if text.lower() in _NULL_STRINGS else text


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _parse_question(raw: dict, index: int) -> QuestionResult:
    number = raw.get("questionNumber")
    try:
        question_number = int(number)
    except (TypeError, ValueError):
        question_number = index + 1

    points_possible = max(1.0, _as_float(raw.get("pointsPossible"), 1.0))
    points_awarded = _clamp(_as_float(raw.get("pointsAwarded"), 0.0), 0.0, points_possible)

    return QuestionResult(
        question_number=question_number,
        problem_text=_as_str(raw.get("problemText")) or "",
        ai_calculation=_as_str(raw.get("aiCalculation")),
        ai_answer=_as_str(raw.get("aiAnswer")),
        student_answer=_as_str(raw.get("studentAnswer")),
        answer_key_value=_as_str(raw.get("answerKeyValue")),
        is_correct=_as_bool(raw.get("isCorrect")),
        points_awarded=points_awarded,
        points_possible=points_possible,
        confidence=_clamp(_as_float(raw.get("confidence"), DEFAULT_QUESTION_CONFIDENCE)),
        readability_confidence=_clamp(_as_float(raw.get("readabilityConfidence"), 1.0)),
        readability_issue=_as_str(raw.get("readabilityIssue")),
        discrepancy=_as_str(raw.get("discrepancy")),
    )


def parse_grading_response(content: str) -> Optional[ParsedGradingResponse]:
    """
    Parse the blind grading response.

    Expected shape: {"studentName", "nameConfidence", "questions": [...],
    "totalScore", "totalPossible", "needsReview", "reviewReason"}.

    Returns:
        ParsedGradingResponse, or None when no JSON object with a
        "questions" list can be found
    """
    data = extract_json_from_response(content)
    if data is None or not isinstance(data.get("questions"), list):
        return None

    questions = [
        _parse_question(raw, i)
        for i, raw in enumerate(data["questions"])
        if isinstance(raw, dict)
    ]

    return ParsedGradingResponse(
        student_name=_as_str(data.get("studentName")),
        name_confidence=_clamp(_as_float(data.get("nameConfidence"), 0.0)),
        questions=questions,
        total_score=_as_float(data.get("totalScore"), 0.0),
        total_possible=_as_float(data.get("totalPossible"), 0.0),
        needs_review=_as_bool(data.get("needsReview")),
        review_reason=_as_str(data.get("reviewReason")),
    )


def parse_verification_response(content: str) -> Optional[ChainOfThoughtJudgment]:
    """
    Parse a chain-of-thought verification response.

    Accepts yourAnswer/calculatedAnswer and providedAnswer/givenAnswer.
    Confidence defaults to 0.8 and is clamped to [0, 1].

    Returns:
        ChainOfThoughtJudgment, or None if the content holds no JSON object
    """
    data = extract_json_from_response(content)
    if data is None:
        return None

    your_answer = data.get("yourAnswer")
    if your_answer is None:
        your_answer = data.get("calculatedAnswer")
    provided_answer = data.get("providedAnswer")
    if provided_answer is None:
        provided_answer = data.get("givenAnswer")

    steps = data.get("steps")
    if steps is None:
        steps = data.get("algebraicSteps")

    return ChainOfThoughtJudgment(
        your_answer=_as_str(your_answer) or "",
        provided_answer=_as_str(provided_answer) or "",
        match=_as_bool(data.get("match")),
        confidence=_clamp(_as_float(data.get("confidence"), CONFIDENCE_COT_DEFAULT)),
        steps=steps,
        discrepancy=_as_str(data.get("discrepancy")),
        calculation=_as_str(data.get("calculation")),
    )


def parse_feedback_response(content: str) -> Optional[ParsedFeedback]:
    """Parse {"feedback": [{"questionNumber", "message"}], "overallMessage"}."""
    data = extract_json_from_response(content)
    if data is None:
        return None

    messages = {}
    entries = data.get("feedback")
    if isinstance(entries, list):
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            message = _as_str(entry.get("message"))
            try:
                number = int(entry.get("questionNumber"))
            except (TypeError, ValueError):
                continue
            if message:
                messages[number] = message

    return ParsedFeedback(
        messages=messages,
        overall_message=_as_str(data.get("overallMessage")) or "",
    )
