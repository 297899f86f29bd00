"""
Grading module for math homework.

Provides answer comparison, difficulty classification, verification
routing and the end-to-end grading service.
"""

from mathgrader.grading.comparator import (
    are_answers_equivalent,
    compare_answers,
    format_answer,
    matches_any,
    normalize_answer,
)
from mathgrader.grading.classifier import (
    classify_difficulty,
    classify_with_reason,
    get_max_difficulty,
    requires_verification,
    requires_wolfram_verification,
)
from mathgrader.grading.verification import VerificationService, get_verification_stats
from mathgrader.grading.service import EnhancedGradingService

__all__ = [
    'are_answers_equivalent',
    'compare_answers',
    'format_answer',
    'matches_any',
    'normalize_answer',
    'classify_difficulty',
    'classify_with_reason',
    'get_max_difficulty',
    'requires_verification',
    'requires_wolfram_verification',
    'VerificationService',
    'get_verification_stats',
    'EnhancedGradingService',
]
