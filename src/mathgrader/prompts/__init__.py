"""
Prompt templates for the math grading pipeline.

Organized by category:
- grading: blind grading, OCR supplement, feedback
- verification: chain-of-thought re-derivation
"""

# Grading prompts
from mathgrader.prompts.grading import (
    GRADING_SYSTEM_PROMPT,
    FEEDBACK_SYSTEM_PROMPT,
    build_blind_grading_prompt,
    build_ocr_supplement,
    build_batch_feedback_prompt,
)

# Verification prompts
from mathgrader.prompts.verification import (
    VERIFICATION_SYSTEM_PROMPT,
    build_verification_prompt,
    build_algebra_verification_prompt,
    build_word_problem_verification_prompt,
    select_verification_prompt,
)


__all__ = [
    # Grading
    'GRADING_SYSTEM_PROMPT',
    'FEEDBACK_SYSTEM_PROMPT',
    'build_blind_grading_prompt',
    'build_ocr_supplement',
    'build_batch_feedback_prompt',
    # Verification
    'VERIFICATION_SYSTEM_PROMPT',
    'build_verification_prompt',
    'build_algebra_verification_prompt',
    'build_word_problem_verification_prompt',
    'select_verification_prompt',
]
