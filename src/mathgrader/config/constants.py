"""
Constants and configuration values for the math grading pipeline.

Defines thresholds, defaults, endpoints, and advisory prices.
"""

from typing import Dict, Final

# Chat model defaults (per provider)
OPENAI_DEFAULT_MODEL: Final[str] = "gpt-4o"
GEMINI_DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
GROQ_DEFAULT_MODEL: Final[str] = "llama-3.2-90b-vision-preview"
MAX_TOKENS: Final[int] = 4096
TEMPERATURE: Final[float] = 0.1  # Low temperature for reproducible grading

# Endpoints
MATHPIX_API_URL: Final[str] = "https://api.mathpix.com/v3/text"
WOLFRAM_API_URL: Final[str] = "https://api.wolframalpha.com/v1/result"
GROQ_BASE_URL: Final[str] = "https://api.groq.com/openai/v1"

# API Timeouts (seconds)
API_CONNECT_TIMEOUT: Final[float] = 10.0
API_READ_TIMEOUT: Final[float] = 60.0
WOLFRAM_DEFAULT_TIMEOUT: Final[float] = 10.0
MATHPIX_DEFAULT_TIMEOUT: Final[float] = 30.0

# Answer comparison
DEFAULT_TOLERANCE: Final[float] = 0.0001
RELATIVE_TOLERANCE: Final[float] = 0.0001
RELATIVE_TOLERANCE_CROSSOVER: Final[float] = 1000.0  # Relative slack applies from here up
FORMAT_FRACTION_TOLERANCE: Final[float] = 0.01

# Verification confidences
CONFIDENCE_SKIPPED: Final[float] = 0.7
CONFIDENCE_SIMPLE: Final[float] = 0.85
CONFIDENCE_WOLFRAM_MATCH: Final[float] = 0.98
CONFIDENCE_WOLFRAM_CONFLICT: Final[float] = 0.6
CONFIDENCE_UNVERIFIED: Final[float] = 0.7
CONFIDENCE_UNPARSEABLE: Final[float] = 0.75
CONFIDENCE_COT_DEFAULT: Final[float] = 0.8
MIN_CONFLICT_CONFIDENCE: Final[float] = 0.5

# Grading review thresholds
READABILITY_REVIEW_THRESHOLD: Final[float] = 0.7
DEFAULT_QUESTION_CONFIDENCE: Final[float] = 0.5
DEFAULT_OCR_CONFIDENCE: Final[float] = 0.8

# Provider manager
MAX_RETRIES: Final[int] = 3
RETRY_DELAY_SECONDS: Final[float] = 1.0
RETRY_BASE_DELAY: Final[float] = 1.0

# Resilience defaults
CIRCUIT_FAILURE_THRESHOLD: Final[int] = 5
CIRCUIT_RESET_TIMEOUT: Final[float] = 30.0
CACHE_TTL_SECONDS: Final[float] = 60.0
BATCH_MAX_SIZE: Final[int] = 50
BATCH_DELAY_SECONDS: Final[float] = 0.01
JITTER_FRACTION: Final[float] = 0.25

# Token buckets per resource (requests per second, burst)
RATE_LIMITS: Final[Dict[str, tuple]] = {
    "openai": (8.0, 20),    # ~500 RPM tier 1
    "gemini": (0.25, 5),    # ~15 RPM free tier
    "groq": (0.5, 10),
    "mathpix": (5.0, 10),
    "wolfram": (2.0, 5),
}
DEFAULT_RATE_LIMIT: Final[tuple] = (10.0, 20)

# Queue
MAX_QUEUE_ATTEMPTS: Final[int] = 3
LOCK_TIMEOUT_SECONDS: Final[float] = 5 * 60

# Advisory per-call costs (USD)
MATHPIX_COST_PER_IMAGE: Final[float] = 0.004
CHAT_COST_PER_GRADING: Final[float] = 0.015
WOLFRAM_COST_PER_QUERY: Final[float] = 0.02
