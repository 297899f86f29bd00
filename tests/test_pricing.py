"""
Tests for advisory cost estimates.
"""

import pytest

from mathgrader.core.models import ProviderCall
from mathgrader.llm.pricing import (
    calculate_token_cost,
    estimate_submission_cost,
    get_pricing_info,
    summarize_call_costs,
)


def test_submission_cost_components():
    costs = estimate_submission_cost(ocr_succeeded=True, chat_succeeded=True, wolfram_queries=2)

    assert costs.mathpix == 0.004
    assert costs.chat_completion == 0.015
    assert costs.wolfram == 0.04
    assert costs.total == pytest.approx(0.059)


def test_failed_stages_cost_nothing():
    costs = estimate_submission_cost(ocr_succeeded=False, chat_succeeded=False, wolfram_queries=0)
    assert costs.total == 0


def test_token_cost():
    assert calculate_token_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
    # Unknown models priced like gpt-4o
    assert calculate_token_cost("mystery", 1_000_000, 0) == pytest.approx(2.5)
    assert get_pricing_info("gemini-2.5-flash") == {"prompt": 0.30, "completion": 2.50}
    assert get_pricing_info("mystery") is None


def test_summarize_call_costs():
    calls = [
        ProviderCall(provider="openai", model="gpt-4o", prompt_tokens=1000, completion_tokens=500),
        ProviderCall(provider="openai", model="gpt-4o", prompt_tokens=1000, completion_tokens=500),
        ProviderCall(provider="groq", model="llama-3.2-90b-vision-preview", prompt_tokens=None, completion_tokens=None),
    ]

    totals = summarize_call_costs(calls)

    assert totals["openai"] == pytest.approx(0.015)
    assert totals["groq"] == 0
