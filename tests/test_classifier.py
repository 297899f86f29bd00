"""
Tests for difficulty classification.
"""

import pytest

from mathgrader.core.models import ProblemDifficulty
from mathgrader.grading.classifier import (
    classify_batch,
    classify_difficulty,
    classify_with_reason,
    get_max_difficulty,
    max_difficulty,
    requires_verification,
    requires_wolfram_verification,
)


@pytest.mark.parametrize("text", [
    "3 + 5",
    "7 × 8",
    "100 - 42",
    "9",
])
def test_simple(text):
    assert classify_difficulty(text) == ProblemDifficulty.SIMPLE


@pytest.mark.parametrize("text", [
    "3/4 + 1/2",
    "20 / 4",
    "12 ÷ 4",
    "15% of 80",
    "0.5 + 1.25",
    "-3 + 7",
    "2 + 3 * 4",
    "(2 + 3) * 4",
    "3:4",
    "5^1",
])
def test_moderate(text):
    assert classify_difficulty(text) == ProblemDifficulty.MODERATE


@pytest.mark.parametrize("text", [
    "2x + 5 = 15",
    "Solve for y: 3y = 12",
    "simplify 4(a + 2)",
    "5^2",
    "sqrt(16)",
    "√49",
    "5 > 3",
    "|-7|",
    "log 100",
    "sin 30",
    "4!",
    "What is 6 squared",
])
def test_complex(text):
    assert classify_difficulty(text) == ProblemDifficulty.COMPLEX


def test_empty_input_is_simple():
    result = classify_with_reason("")
    assert result.difficulty == ProblemDifficulty.SIMPLE
    assert result.reason == "Empty input"


def test_reason_names_the_rule():
    """Test that the reason reports which rule decided."""
    assert classify_with_reason("sqrt(16)").reason == "Square root"
    assert classify_with_reason("15% of 80").reason == "Percentage"
    assert classify_with_reason("3 + 5").reason == "Basic arithmetic"
    assert classify_with_reason("2x + 5 = 15").matched_pattern is not None


def test_batch_preserves_order():
    assert classify_batch(["3 + 5", "x^2", "1/2"]) == [
        ProblemDifficulty.SIMPLE,
        ProblemDifficulty.COMPLEX,
        ProblemDifficulty.MODERATE,
    ]


def test_max_difficulty():
    assert get_max_difficulty(["3 + 5", "1/2"]) == ProblemDifficulty.MODERATE
    assert get_max_difficulty(["3 + 5", "1/2", "2x = 4"]) == ProblemDifficulty.COMPLEX
    assert get_max_difficulty([]) == ProblemDifficulty.SIMPLE
    assert max_difficulty([]) == ProblemDifficulty.SIMPLE


def test_requires_verification():
    assert not requires_verification("3 + 5")
    assert requires_verification("3/4 + 1/2")
    assert requires_verification("2x + 5 = 15")
    assert not requires_wolfram_verification("3/4 + 1/2")
    assert requires_wolfram_verification("2x + 5 = 15")


@pytest.mark.parametrize("text,variant", [
    ("Solve: 2x + 3 = 7", "  SOLVE:   2X + 3 = 7 "),
    ("3/4 + 1/2", "\t3/4  +  1/2\n"),
    ("Simplify 4(a + 2)", "SIMPLIFY 4(A + 2)"),
    ("7 × 8", "  7   ×   8  "),
])
def test_case_and_whitespace_do_not_matter(text, variant):
    assert classify_difficulty(variant) == classify_difficulty(text)


@pytest.mark.parametrize("text", ["3 + 5", "1/2", "2x = 4", "15% of 80", ""])
def test_classification_is_deterministic(text):
    first = classify_with_reason(text)
    assert all(classify_with_reason(text) == first for _ in range(5))


@pytest.mark.parametrize("texts", [
    ["3 + 5"],
    ["3 + 5", "1/2"],
    ["1/2", "3 + 5", "x^2"],
    ["sqrt(16)", "20 / 4", "9"],
])
def test_max_difficulty_covers_every_problem(texts):
    rank = {ProblemDifficulty.SIMPLE: 0, ProblemDifficulty.MODERATE: 1, ProblemDifficulty.COMPLEX: 2}
    overall = rank[get_max_difficulty(texts)]
    assert all(overall >= rank[classify_difficulty(t)] for t in texts)


@pytest.mark.parametrize("text,expected", [
    ("Q1: 5 + 3", ProblemDifficulty.SIMPLE),
    ("Question 2) 7 × 8", ProblemDifficulty.SIMPLE),
    ("Problem 3: 12 - 4", ProblemDifficulty.SIMPLE),
    ("Q4: 3/4 + 1/2", ProblemDifficulty.MODERATE),
    ("Q5: write 6:8 in lowest terms", ProblemDifficulty.MODERATE),
])
def test_question_labels_are_ignored(text, expected):
    assert classify_difficulty(text) == expected
