"""
Rule-based difficulty classification for math problems.

Routes each problem to the cheapest sufficient verification strategy:
simple arithmetic is trusted, moderate problems get a chain-of-thought
re-derivation, complex problems go to the symbolic solver when one is
configured.

Rules are evaluated from most to least complex; the first match wins.
Plain division ("20 / 4") is deliberately moderate: remainders and
decimal results make it harder to check at a glance.
"""

import re
from typing import Iterable, List, Pattern, Tuple

from mathgrader.core.models import ClassificationResult, ProblemDifficulty

_WHITESPACE = re.compile(r'\s+')
_QUESTION_LABEL = re.compile(r'^(?:q(?:uestion)?|problem|ex(?:ercise)?|#)\s*\d+[a-z]?\s*[:.)]\s*')

# Unicode operators folded to ASCII before matching
_OPERATOR_MAP = str.maketrans({
    '−': '-',
    '–': '-',
    '×': '*',
    '·': '*',
    '÷': '/',
})

Rule = Tuple[Pattern[str], str]


def _rules(*specs: Tuple[str, str]) -> List[Rule]:
    return [(re.compile(pattern), reason) for pattern, reason in specs]


COMPLEX_RULES: List[Rule] = _rules(
    # Algebra
    (r'[a-z]\s*[=+\-*/]', "Algebraic variable with operator"),
    (r'[+\-*/=]\s*[a-z]', "Algebraic variable with operator"),
    (r'^(?:solve|find)\b', "Solve/find instruction"),
    (r'\bsolve\s+(?:for|the)\b', "Solve/find instruction"),
    (r'\bfind\s+(?:the|x|y)\b', "Solve/find instruction"),
    (r'\bequations?\b', "Equation keyword"),
    (r'\bsimplify\b', "Simplification"),
    (r'\bfactor\b', "Factoring"),
    (r'\bexpand\b', "Expansion"),
    # Exponents other than ^1
    (r'\^\s*\{?\s*(?:[02-9]|1\d|[a-z(\-])', "Exponent"),
    (r'\b(?:squared|cubed)\b', "Exponent"),
    # Roots
    (r'sqrt|√', "Square root"),
    (r'square\s*root', "Square root"),
    # Inequalities
    (r'[<>≤≥≠]', "Inequality"),
    (r'\b(?:less|greater)\s+than\b', "Inequality"),
    # Absolute value
    (r'\|[^|]+\|', "Absolute value"),
    (r'\babsolute\b', "Absolute value"),
    # Functions
    (r'\b(?:log|ln)\b', "Logarithm"),
    (r'\b(?:sin|cos|tan|cot|sec|csc)\b', "Trigonometric function"),
    # Factorials
    (r'\d\s*!(?!=)', "Factorial"),
    (r'\bfactorial\b', "Factorial"),
)

MODERATE_RULES: List[Rule] = _rules(
    # Fractions and division
    (r'\\frac', "Fraction"),
    (r'\d+\s*/\s*\d+', "Fraction or division"),
    (r'\bfractions?\b', "Fraction"),
    (r'\bdivided\s+by\b', "Division"),
    # Percentages
    (r'%', "Percentage"),
    (r'\bpercent', "Percentage"),
    # Decimals in an operation
    (r'\d*\.\d+\s*[+\-*/]', "Decimal arithmetic"),
    (r'[+\-*/]\s*\d*\.\d+', "Decimal arithmetic"),
    # Negative numbers in an operation
    (r'^-\s*\d', "Negative number"),
    (r'[+\-*/=(]\s*-\s*\d', "Negative number"),
    # Trivial exponent
    (r'\^\s*\{?\s*1\b', "Exponent of one"),
    # Order of operations
    (r'\([^)]+[+\-*/][^)]+\)\s*[+\-*/]', "Order of operations"),
    (r'[+\-*/]\s*\(', "Order of operations"),
    (r'\d+(?:\.\d+)?\s*[+\-*/]\s*-?\d+(?:\.\d+)?\s*[+\-*/]\s*-?\d', "Multi-step arithmetic"),
    # Ratios
    (r'(?<![a-z\d.])\d+\s*:\s*\d', "Ratio"),
    (r'\b(?:ratio|proportion)s?\b', "Ratio"),
)


def normalize_problem_text(text: str) -> str:
    """Lowercase, fold unicode operators, collapse whitespace, drop a "Q1:" label."""
    if not text:
        return ""
    normalized = _WHITESPACE.sub(' ', text.translate(_OPERATOR_MAP).lower()).strip()
    return _QUESTION_LABEL.sub('', normalized)


def classify_with_reason(text: str) -> ClassificationResult:
    """
    Classify a problem and report which rule decided it.

    Args:
        text: Problem text as read from the homework

    Returns:
        ClassificationResult with difficulty, reason and matched pattern
    """
    normalized = normalize_problem_text(text)
    if not normalized:
        return ClassificationResult(difficulty=ProblemDifficulty.SIMPLE, reason="Empty input")

    for difficulty, rules in (
        (ProblemDifficulty.COMPLEX, COMPLEX_RULES),
        (ProblemDifficulty.MODERATE, MODERATE_RULES),
    ):
        for pattern, reason in rules:
            if pattern.search(normalized):
                return ClassificationResult(
                    difficulty=difficulty,
                    reason=reason,
                    matched_pattern=pattern.pattern,
                )

    return ClassificationResult(difficulty=ProblemDifficulty.SIMPLE, reason="Basic arithmetic")


def classify_difficulty(text: str) -> ProblemDifficulty:
    """Classify a problem as simple, moderate, or complex."""
    return classify_with_reason(text).difficulty


def classify_batch(texts: Iterable[str]) -> List[ProblemDifficulty]:
    """Classify several problems, preserving input order."""
    return [classify_difficulty(t) for t in texts]


def max_difficulty(difficulties: Iterable[ProblemDifficulty]) -> ProblemDifficulty:
    """Highest of already-classified difficulties (simple when empty)."""
    return max(difficulties, key=lambda d: d.rank, default=ProblemDifficulty.SIMPLE)


def get_max_difficulty(texts: Iterable[str]) -> ProblemDifficulty:
    """Highest difficulty present among problem texts (simple when empty)."""
    return max_difficulty(classify_batch(texts))


def requires_verification(text: str) -> bool:
    """True for moderate and complex problems."""
    return classify_difficulty(text) != ProblemDifficulty.SIMPLE


def requires_wolfram_verification(text: str) -> bool:
    """True only for problems worth a symbolic solver query."""
    return classify_difficulty(text) == ProblemDifficulty.COMPLEX
