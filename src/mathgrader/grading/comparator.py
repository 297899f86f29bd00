"""
Semantics-aware answer comparison.

Decides whether two differently formatted answers mean the same thing:
"1/2" and "0.5", "50%" and ".5", "$1,000" and "1000 dollars".

Comparison order (first success wins):
1. exact      - normalized strings are identical
2. numeric    - both are plain numbers within tolerance
3. fraction   - cross-multiplication or fraction vs decimal
4. percentage - percent forms decimalized against the other side
"""

import re
from typing import Iterable, Optional, Union

from mathgrader.config.constants import (
    DEFAULT_TOLERANCE,
    FORMAT_FRACTION_TOLERANCE,
    RELATIVE_TOLERANCE,
    RELATIVE_TOLERANCE_CROSSOVER,
)
from mathgrader.core.models import AnswerComparisonResult, ComparisonMethod, ParsedFraction

_LEADING_MARKER = re.compile(r'^[=:]\s*')
_VARIABLE_ASSIGNMENT = re.compile(r'^[a-z]\s*=\s*(?=[^=]+$)')
_CURRENCY = re.compile(r'[$€£¥]')
_TRAILING_UNIT = re.compile(
    r'(?<=\d)\s*(?:dollars?|cents?|meters?|metres?|feet|foot|ft|inches|inch|in|'
    r'cm|mm|km|kg|g|grams?|lbs?|pounds?|oz|ounces?)\.?$'
)
_TRAILING_ZERO_DECIMAL = re.compile(r'(\d)\.0+$')
_WHITESPACE = re.compile(r'\s+')

_PLAIN_NUMBER = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?$')
_MIXED_NUMBER = re.compile(r'^(-?)(\d+)\s+(\d+)\s*/\s*(\d+)$')
_SIMPLE_FRACTION = re.compile(r'^(-?\d+)\s*/\s*(\d+)$')
_PERCENTAGE = re.compile(r'^(-?(?:\d+\.?\d*|\.\d+))\s*(?:%|percent)$')

# Fractions format_answer may render, as (numerator, denominator)
COMMON_FRACTIONS = (
    (1, 2),
    (1, 3), (2, 3),
    (1, 4), (3, 4),
    (1, 5), (2, 5), (3, 5), (4, 5),
    (1, 8), (3, 8), (5, 8), (7, 8),
)


def normalize_answer(answer: Optional[Union[str, int, float]]) -> str:
    """
    Normalize an answer string for comparison.

    Lowercases, strips a single-variable assignment ("x = 5" -> "5"),
    a leading "=" or ":", thousands separators, currency symbols and
    trailing unit words, collapses whitespace, and drops a trailing
    ".0"/".00".

    Args:
        answer: Raw answer (None yields an empty string)

    Returns:
        Normalized answer
    """
    if answer is None:
        return ""

    text = str(answer).strip().lower()
    text = _VARIABLE_ASSIGNMENT.sub('', text)
    text = _LEADING_MARKER.sub('', text)
    text = text.replace(',', '')
    text = _CURRENCY.sub('', text)
    text = _WHITESPACE.sub(' ', text).strip()
    text = _TRAILING_UNIT.sub('', text).strip()
    text = _TRAILING_ZERO_DECIMAL.sub(r'\1', text)
    return text


def _parse_plain_number(text: str) -> Optional[float]:
    if not _PLAIN_NUMBER.match(text):
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_fraction(text: Optional[str]) -> Optional[ParsedFraction]:
    """
    Parse "a/b" or a mixed number "w a/b".

    Mixed numbers fold into an improper fraction ("1 1/2" -> 3/2,
    "-1 1/2" -> -3/2). A zero denominator is invalid.

    Args:
        text: Candidate fraction

    Returns:
        ParsedFraction, or None if the text is not a valid fraction
    """
    if not text:
        return None
    text = text.strip()

    mixed = _MIXED_NUMBER.match(text)
    if mixed:
        sign, whole, numerator, denominator = mixed.groups()
        denominator = int(denominator)
        if denominator == 0:
            return None
        improper = int(whole) * denominator + int(numerator)
        return ParsedFraction(-improper if sign else improper, denominator)

    simple = _SIMPLE_FRACTION.match(text)
    if simple:
        numerator, denominator = int(simple.group(1)), int(simple.group(2))
        if denominator == 0:
            return None
        return ParsedFraction(numerator, denominator)

    return None


def parse_percentage(text: Optional[str]) -> Optional[float]:
    """
    Parse "50%" or "50 percent".

    Returns:
        The percentage number (50.0 for "50%"), or None
    """
    if not text:
        return None
    match = _PERCENTAGE.match(text.strip().lower())
    if not match:
        return None
    return float(match.group(1))


def parse_numeric(text: Optional[str]) -> Optional[float]:
    """
    Parse any numeric answer form to a float.

    Tries a plain number first, then a fraction, then a percentage
    (returned as a decimal, so "50%" is 0.5).

    Returns:
        Float value, or None if the text is not numeric
    """
    if text is None:
        return None
    normalized = normalize_answer(text)
    if not normalized:
        return None

    value = _parse_plain_number(normalized)
    if value is not None:
        return value

    fraction = parse_fraction(normalized)
    if fraction is not None:
        return fraction.value

    percentage = parse_percentage(normalized)
    if percentage is not None:
        return percentage / 100

    return None


def within_tolerance(a: float, b: float, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """
    Numeric equality with absolute and relative slack.

    The allowed difference is the absolute tolerance, widened to a
    relative tolerance once max(|a|, |b|) reaches the crossover.
    Non-zero values of opposite sign never match.
    """
    if a != 0 and b != 0 and (a < 0) != (b < 0):
        return False

    allowed = tolerance
    scale = max(abs(a), abs(b))
    if scale >= RELATIVE_TOLERANCE_CROSSOVER:
        allowed = max(tolerance, scale * RELATIVE_TOLERANCE)

    return abs(a - b) <= allowed


def compare_answers(
    answer_a: Optional[Union[str, int, float]],
    answer_b: Optional[Union[str, int, float]],
    tolerance: Optional[float] = None,
) -> AnswerComparisonResult:
    """
    Compare two answers for mathematical or textual equivalence.

    Args:
        answer_a: First answer
        answer_b: Second answer
        tolerance: Absolute numeric tolerance (default 0.0001)

    Returns:
        AnswerComparisonResult naming the rule that matched
    """
    tol = DEFAULT_TOLERANCE if tolerance is None else tolerance
    norm_a = normalize_answer(answer_a)
    norm_b = normalize_answer(answer_b)

    def result(matched: bool, method: ComparisonMethod) -> AnswerComparisonResult:
        return AnswerComparisonResult(
            matched=matched, method=method, normalized_a=norm_a, normalized_b=norm_b
        )

    # Fail closed on missing answers
    if not norm_a or not norm_b:
        return result(False, ComparisonMethod.NONE)

    if norm_a == norm_b:
        return result(True, ComparisonMethod.EXACT)

    value_a = _parse_plain_number(norm_a)
    value_b = _parse_plain_number(norm_b)
    if value_a is not None and value_b is not None:
        if within_tolerance(value_a, value_b, tol):
            return result(True, ComparisonMethod.NUMERIC)

    fraction_a = parse_fraction(norm_a)
    fraction_b = parse_fraction(norm_b)
    if fraction_a is not None and fraction_b is not None:
        cross_equal = (
            fraction_a.numerator * fraction_b.denominator
            == fraction_b.numerator * fraction_a.denominator
        )
        if cross_equal or within_tolerance(fraction_a.value, fraction_b.value, tol):
            return result(True, ComparisonMethod.FRACTION)
    elif fraction_a is not None and value_b is not None:
        if within_tolerance(fraction_a.value, value_b, tol):
            return result(True, ComparisonMethod.FRACTION)
    elif fraction_b is not None and value_a is not None:
        if within_tolerance(value_a, fraction_b.value, tol):
            return result(True, ComparisonMethod.FRACTION)

    percent_a = parse_percentage(norm_a)
    percent_b = parse_percentage(norm_b)
    if percent_a is not None or percent_b is not None:
        decimal_a = percent_a / 100 if percent_a is not None else parse_numeric(norm_a)
        decimal_b = percent_b / 100 if percent_b is not None else parse_numeric(norm_b)
        if decimal_a is not None and decimal_b is not None:
            if within_tolerance(decimal_a, decimal_b, tol):
                return result(True, ComparisonMethod.PERCENTAGE)

    return result(False, ComparisonMethod.NONE)


def are_answers_equivalent(
    answer_a: Optional[Union[str, int, float]],
    answer_b: Optional[Union[str, int, float]],
    tolerance: Optional[float] = None,
) -> bool:
    """Boolean convenience wrapper over compare_answers."""
    return compare_answers(answer_a, answer_b, tolerance).matched


def matches_any(
    answer: Optional[str],
    candidates: Iterable[Optional[str]],
    tolerance: Optional[float] = None,
) -> bool:
    """True if the answer is equivalent to any accepted form."""
    return any(compare_answers(answer, c, tolerance).matched for c in candidates)


def format_answer(answer: Union[str, int, float]) -> str:
    """
    Render a decimal as a common fraction when one is close.

    Only magnitudes below one are considered; halves, thirds, quarters,
    fifths and eighths within 0.01 are rendered ("0.75" -> "3/4",
    "-0.333" -> "-1/3"). Anything else is returned unchanged.
    """
    text = str(answer)
    value = _parse_plain_number(normalize_answer(text))
    if value is None or value == 0 or abs(value) >= 1:
        return text

    magnitude = abs(value)
    best = min(COMMON_FRACTIONS, key=lambda f: abs(magnitude - f[0] / f[1]))
    if abs(magnitude - best[0] / best[1]) >= FORMAT_FRACTION_TOLERANCE:
        return text

    sign = "-" if value < 0 else ""
    return f"{sign}{best[0]}/{best[1]}"
