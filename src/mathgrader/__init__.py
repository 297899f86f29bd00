"""
Math homework grading pipeline.

OCR extraction, model grading, difficulty-routed answer verification,
and semantics-aware answer comparison.
"""

__version__ = "0.4.0"
