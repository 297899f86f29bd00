"""
LLM pricing and cost estimation module.

Provides per-model token pricing and flat per-submission cost estimates.
"""

from .pricing import (
    PRICING_TABLES,
    calculate_token_cost,
    estimate_submission_cost,
    get_pricing_info,
    summarize_call_costs,
)

__all__ = [
    'PRICING_TABLES',
    'calculate_token_cost',
    'estimate_submission_cost',
    'get_pricing_info',
    'summarize_call_costs',
]
