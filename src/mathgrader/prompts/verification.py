"""
Verification prompts for the chain-of-thought re-derivation pass.

The model is asked to solve the problem from scratch and then say
whether its own answer equals the one under review.

Contains:
- Verification system prompt
- Default, algebra and word-problem verification prompts
- Prompt selection by problem shape
"""

import re

from mathgrader.core.models import ProblemDifficulty


VERIFICATION_SYSTEM_PROMPT = """You check arithmetic and algebra for a grading system.

RULES:
1. Solve the problem again from the beginning; do not assume the answer you are given is right
2. Write out every step
3. Take particular care with order of operations, signs, fractions, decimal places and units
4. Compare your result with the answer under review and say whether they match

Reply with JSON only:
{
  "steps": ["step 1", "step 2"],
  "calculation": "the full working",
  "yourAnswer": "your result",
  "providedAnswer": "the answer under review",
  "match": true or false,
  "confidence": 0.0 to 1.0,
  "discrepancy": "what differs, or null when they match"
}

No markdown and no code fences."""


_ALGEBRA_INDICATORS = re.compile(r'[a-z]\s*[=+\-*/]|solve\s+for|simplify|factor|expand', re.IGNORECASE)
_WORD_PROBLEM_INDICATORS = re.compile(
    r'\b(has|had|have|bought|sold|gave|received|each|total|how many|how much|find|what is)\b',
    re.IGNORECASE,
)


def build_verification_prompt(problem_text: str, proposed_answer: str) -> str:
    """Default verification prompt for arithmetic."""
    return f"""VERIFY THIS ANSWER

Problem: {problem_text}
Answer under review: {proposed_answer}

1. Read the problem
2. Solve it yourself, step by step
3. Compare your answer with the answer under review
4. Report whether they match

Respond with JSON only."""


def build_algebra_verification_prompt(problem_text: str, proposed_answer: str) -> str:
    """Algebra prompt: solve, then substitute the result back to check it."""
    return f"""VERIFY THIS ALGEBRA ANSWER

Problem: {problem_text}
Answer under review: {proposed_answer}

1. Write down the equation or expression
2. Show each algebraic step
3. For an equation, substitute your solution back into the original
4. For an expression, simplify fully
5. Compare with the answer under review

Respond with JSON:
{{
  "originalEquation": "the equation or expression",
  "steps": ["step 1", "step 2"],
  "yourAnswer": "your result",
  "calculation": "the substitution check",
  "providedAnswer": "the answer under review",
  "match": true or false,
  "confidence": 0.0 to 1.0,
  "discrepancy": "what differs, or null"
}}"""


def build_word_problem_verification_prompt(problem_text: str, proposed_answer: str) -> str:
    """Word-problem prompt: restate the question and set up the equation first."""
    return f"""VERIFY THIS WORD PROBLEM ANSWER

Problem: {problem_text}
Answer under review: {proposed_answer}

1. State what the problem asks for
2. List the given values and the unknown
3. Write the equation that connects them
4. Solve it step by step
5. Check that the result is sensible in context
6. Compare with the answer under review

Respond with JSON:
{{
  "steps": ["step 1", "step 2"],
  "calculation": "the equation and its solution",
  "yourAnswer": "your result",
  "providedAnswer": "the answer under review",
  "match": true or false,
  "confidence": 0.0 to 1.0,
  "discrepancy": "what differs, or null"
}}"""


def select_verification_prompt(
    problem_text: str,
    proposed_answer: str,
    difficulty: ProblemDifficulty,
) -> str:
    """
    Pick the verification prompt that fits the problem.

    Complex problems with algebra indicators get the algebra prompt;
    problems worded as a story get the word-problem prompt; everything
    else gets the default.
    """
    if difficulty == ProblemDifficulty.COMPLEX and _ALGEBRA_INDICATORS.search(problem_text):
        return build_algebra_verification_prompt(problem_text, proposed_answer)
    if _WORD_PROBLEM_INDICATORS.search(problem_text):
        return build_word_problem_verification_prompt(problem_text, proposed_answer)
    return build_verification_prompt(problem_text, proposed_answer)
