"""
Advisory pricing for external calls.

Two views are provided:
- flat per-call prices used for the per-submission CostBreakdown
- per-million-token prices for chat models, for call-history reports

Prices as of 2025-06 - verify with provider documentation.
"""

from typing import Dict, Iterable, Optional

from mathgrader.config.constants import (
    CHAT_COST_PER_GRADING,
    MATHPIX_COST_PER_IMAGE,
    WOLFRAM_COST_PER_QUERY,
)
from mathgrader.core.models import CostBreakdown, ProviderCall


# Pricing tables (USD per million tokens)
PRICING_TABLES: Dict[str, Dict[str, float]] = {
    # OpenAI models
    "gpt-4o": {
        "prompt": 2.50,
        "completion": 10.00,
    },
    "gpt-4o-mini": {
        "prompt": 0.15,
        "completion": 0.60,
    },

    # Gemini models (Google)
    "gemini-2.5-pro": {
        "prompt": 1.25,
        "completion": 10.00,
    },
    "gemini-2.5-flash": {
        "prompt": 0.30,
        "completion": 2.50,
    },

    # Groq-hosted models
    "llama-3.2-90b-vision-preview": {
        "prompt": 0.90,
        "completion": 0.90,
    },
}

DEFAULT_PRICING = PRICING_TABLES["gpt-4o"]


def calculate_token_cost(model: Optional[str], prompt_tokens: int, completion_tokens: int) -> float:
    """
    USD cost of one chat call from its token counts.

    Unknown models are priced like gpt-4o.
    """
    pricing = PRICING_TABLES.get(model or "", DEFAULT_PRICING)
    cost = (prompt_tokens / 1_000_000) * pricing["prompt"]
    cost += (completion_tokens / 1_000_000) * pricing["completion"]
    return round(cost, 6)


def summarize_call_costs(calls: Iterable[ProviderCall]) -> Dict[str, float]:
    """Token cost per provider over a call history."""
    totals: Dict[str, float] = {}
    for call in calls:
        cost = calculate_token_cost(call.model, call.prompt_tokens or 0, call.completion_tokens or 0)
        totals[call.provider] = round(totals.get(call.provider, 0.0) + cost, 6)
    return totals


def estimate_submission_cost(
    ocr_succeeded: bool,
    chat_succeeded: bool,
    wolfram_queries: int,
) -> CostBreakdown:
    """
    Flat-rate cost estimate for grading one submission.

    Args:
        ocr_succeeded: Mathpix returned text (billed per image)
        chat_succeeded: the grading call succeeded
        wolfram_queries: number of solver queries made

    Returns:
        CostBreakdown in USD
    """
    mathpix = MATHPIX_COST_PER_IMAGE if ocr_succeeded else 0.0
    chat = CHAT_COST_PER_GRADING if chat_succeeded else 0.0
    wolfram = WOLFRAM_COST_PER_QUERY * max(0, wolfram_queries)
    return CostBreakdown(
        mathpix=mathpix,
        chat_completion=chat,
        wolfram=round(wolfram, 4),
        total=round(mathpix + chat + wolfram, 4),
    )


def get_pricing_info(model: str) -> Optional[Dict[str, float]]:
    """Get pricing table for a model."""
    return PRICING_TABLES.get(model)
