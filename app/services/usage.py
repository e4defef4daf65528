"""
Usage Estimator - Approximate token counts when the LLM provider reports none.

Provider-reported counts always win; estimates are a fallback only.
"""

import math

from app.models.domain import UsageEstimate
from app.models.pricing import ModelId, pricing_for

WORDS_PER_TOKEN = 0.75


def estimate_tokens(text: str | None) -> int:
    """Estimate tokens as ceil(word_count / 0.75). Blank text is 0 tokens."""
    if not text or not text.strip():
        return 0
    words = len(text.split())
    return math.ceil(words / WORDS_PER_TOKEN)


def estimate_usage(input_text: str, output_text: str, model_id: str | ModelId | None) -> UsageEstimate:
    """Estimate tokens for both sides of a turn and the resulting USD cost."""
    input_tokens = estimate_tokens(input_text)
    output_tokens = estimate_tokens(output_text)
    pricing = pricing_for(model_id)

    estimated_cost = (input_tokens / 1000) * pricing.input_cost_per_1k + (
        output_tokens / 1000
    ) * pricing.output_cost_per_1k

    return UsageEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        estimated_cost=estimated_cost,
    )


def resolve_tokens(
    reported_total: int | None,
    input_text: str,
    output_text: str,
    model_id: str | ModelId | None,
) -> tuple[int, bool]:
    """
    Pick the token count to debit for a completed turn.

    Returns:
        (tokens, estimated) - estimated is True when the fallback was used
    """
    if reported_total is not None and reported_total > 0:
        return reported_total, False
    return estimate_usage(input_text, output_text, model_id).total_tokens, True


def cost_per_1k_tokens(model_id: str | ModelId | None) -> float:
    """Combined input + output rate per 1000 tokens."""
    return pricing_for(model_id).combined_cost_per_1k
