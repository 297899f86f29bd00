"""
Tests for answer comparison.
"""

import pytest

from mathgrader.core.models import ComparisonMethod
from mathgrader.grading.comparator import (
    are_answers_equivalent,
    compare_answers,
    format_answer,
    matches_any,
    normalize_answer,
    parse_fraction,
    parse_numeric,
    parse_percentage,
    within_tolerance,
)


def test_normalize_strips_formatting():
    """Test currency, separators, units and markers are removed."""
    assert normalize_answer("$1,000") == "1000"
    assert normalize_answer("= 42") == "42"
    assert normalize_answer("12 cm") == "12"
    assert normalize_answer("  5.00 ") == "5"
    assert normalize_answer("Twenty   Five") == "twenty five"
    assert normalize_answer(None) == ""
    assert normalize_answer(7) == "7"


@pytest.mark.parametrize("a,b,method", [
    ("42", "42", ComparisonMethod.EXACT),
    ("$1,000", "1000 dollars", ComparisonMethod.EXACT),
    ("0.5", "0.50001", ComparisonMethod.NUMERIC),
    ("1/2", "2/4", ComparisonMethod.FRACTION),
    ("1/2", "0.5", ComparisonMethod.FRACTION),
    ("1 1/2", "1.5", ComparisonMethod.FRACTION),
    ("50%", ".5", ComparisonMethod.PERCENTAGE),
    ("25 percent", "1/4", ComparisonMethod.PERCENTAGE),
])
def test_equivalent_forms(a, b, method):
    """Test differently formatted answers that mean the same thing."""
    result = compare_answers(a, b)
    assert result.matched
    assert result.method == method


@pytest.mark.parametrize("a,b", [
    ("8", "10"),
    ("1/2", "1/3"),
    ("-5", "5"),
    ("50%", "5"),
    ("", "0"),
    (None, None),
])
def test_different_answers(a, b):
    result = compare_answers(a, b)
    assert not result.matched
    assert result.method == ComparisonMethod.NONE


@pytest.mark.parametrize("a,b", [
    ("x = 5", "5"),
    ("X=5", "5.0"),
    ("y = 3/4", "0.75"),
])
def test_variable_assignment_is_stripped(a, b):
    """Test solver-style answers such as "x = 5" match the bare value."""
    assert compare_answers(a, b).matched


def test_equation_with_several_equals_signs_is_kept():
    assert normalize_answer("x = 2 = y") == "x = 2 = y"
    assert not compare_answers("x = 2 = y", "2").matched


SAMPLE_ANSWERS = ["42", "1/2", "0.5", "50%", "1 1/2", "$1,000", "3.0", "-7", "x = 5", "twenty"]


@pytest.mark.parametrize("answer", SAMPLE_ANSWERS)
def test_every_answer_matches_itself(answer):
    assert compare_answers(answer, answer).matched


@pytest.mark.parametrize("a", SAMPLE_ANSWERS)
@pytest.mark.parametrize("b", ["0.5", "5", "1.5", "1000", "-7", "3"])
def test_comparison_is_symmetric(a, b):
    assert compare_answers(a, b).matched == compare_answers(b, a).matched


def test_missing_answers_fail_closed():
    """Test that two blanks are not considered equal."""
    assert not are_answers_equivalent("", "")
    assert not are_answers_equivalent(None, "")


def test_relative_tolerance_for_large_values():
    """Test that relative slack applies from 1000 upward."""
    assert within_tolerance(1_000_000, 1_000_050)
    assert not within_tolerance(100, 100.01)
    assert within_tolerance(100, 100.01, tolerance=0.1)


@pytest.mark.parametrize("a,b,tolerance,expected", [
    ("1000000", "1000010", None, True),
    ("1000000", "1000200", None, False),
    ("3.0", "3.1", 0.01, False),
    ("3.0", "3.005", 0.01, True),
])
def test_tolerance_through_compare(a, b, tolerance, expected):
    assert compare_answers(a, b, tolerance).matched is expected


def test_opposite_signs_never_match():
    assert not within_tolerance(-0.00001, 0.00001)
    assert within_tolerance(0, 0.00001)


def test_custom_tolerance():
    assert not compare_answers("3.14", "3.1416").matched
    assert compare_answers("3.14", "3.1416", tolerance=0.01).matched


def test_parse_fraction():
    assert parse_fraction("3/4") == (3, 4)
    assert parse_fraction("-1 1/2") == (-3, 2)
    assert parse_fraction("2 3/4") == (11, 4)
    assert parse_fraction("1/0") is None
    assert parse_fraction("abc") is None


def test_parse_percentage_and_numeric():
    assert parse_percentage("12.5%") == 12.5
    assert parse_percentage("40 percent") == 40.0
    assert parse_percentage("40") is None
    assert parse_numeric("50%") == 0.5
    assert parse_numeric("3/4") == 0.75
    assert parse_numeric("$2,500") == 2500.0
    assert parse_numeric("seven") is None


def test_matches_any_uses_alternates():
    assert matches_any("0.75", ["3/5", "3/4"])
    assert not matches_any("0.7", ["3/4", "75%"])


def test_format_answer():
    """Test decimals are rendered as common fractions when close."""
    assert format_answer("0.75") == "3/4"
    assert format_answer("-0.333") == "-1/3"
    assert format_answer(0.5) == "1/2"
    assert format_answer("0.42") == "0.42"
    assert format_answer("2.5") == "2.5"
    assert format_answer("apple") == "apple"
