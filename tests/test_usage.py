"""
Tests for the usage estimator and pricing table.
"""

import pytest

from app.models.pricing import (
    DEFAULT_MODEL,
    FREE_MONTHLY_TOKENS,
    MODEL_PRICING,
    PRO_MONTHLY_TOKENS,
    ModelId,
    ModelPricing,
    PlanTier,
    allowance_for,
    is_known_model,
    pricing_for,
    resolve_model,
    tier_for_subscription,
)
from app.services.usage import (
    cost_per_1k_tokens,
    estimate_tokens,
    estimate_usage,
    resolve_tokens,
)


class TestEstimateTokens:
    """Word-count based token estimate."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("", 0),
            ("   \n\t ", 0),
            (None, 0),
            ("hello", 2),
            ("one two three", 4),
            ("a b c d e f", 8),
        ],
    )
    def test_estimates(self, text, expected):
        assert estimate_tokens(text) == expected

    def test_whitespace_runs_count_once(self):
        assert estimate_tokens("one   two\n\nthree") == estimate_tokens("one two three")


class TestEstimateUsage:
    def test_totals_and_cost(self):
        estimate = estimate_usage("one two three", "a b c d e f", ModelId.GPT_35_TURBO)

        assert estimate.input_tokens == 4
        assert estimate.output_tokens == 8
        assert estimate.total_tokens == 12
        assert estimate.estimated_cost == pytest.approx(4 / 1000 * 0.0005 + 8 / 1000 * 0.0015)

    def test_unknown_model_priced_as_default(self):
        known = estimate_usage("x y z", "x y z", DEFAULT_MODEL)
        unknown = estimate_usage("x y z", "x y z", "vendor/mystery-model")
        assert unknown.estimated_cost == known.estimated_cost


class TestResolveTokens:
    def test_reported_count_wins(self):
        assert resolve_tokens(321, "a b", "c d", None) == (321, False)

    def test_missing_count_falls_back_to_estimate(self):
        assert resolve_tokens(None, "one two three", "a b c d e f", None) == (12, True)

    def test_zero_count_falls_back_to_estimate(self):
        tokens, estimated = resolve_tokens(0, "hello", "", None)
        assert (tokens, estimated) == (2, True)


class TestPricingTable:
    """Plan allowances and model pricing."""

    def test_allowances(self):
        assert allowance_for(PlanTier.FREE) == FREE_MONTHLY_TOKENS == 5_000
        assert allowance_for(PlanTier.PRO) == PRO_MONTHLY_TOKENS == 100_000

    def test_tier_follows_subscription(self):
        assert tier_for_subscription(None) == PlanTier.FREE
        assert tier_for_subscription("") == PlanTier.FREE
        assert tier_for_subscription("sub_1") == PlanTier.PRO

    def test_every_model_is_priced(self):
        assert set(MODEL_PRICING) == set(ModelId)

    def test_resolve_model(self):
        assert resolve_model("openai/gpt-4o-mini") == ModelId.GPT_4O_MINI
        assert resolve_model(ModelId.MISTRAL_SABA) == ModelId.MISTRAL_SABA
        assert resolve_model(None) == DEFAULT_MODEL
        assert resolve_model("not/a-model") == DEFAULT_MODEL

    def test_is_known_model(self):
        assert is_known_model("anthropic/claude-3-5-haiku") is True
        assert is_known_model("anthropic/claude-opus") is False

    def test_combined_rate(self):
        assert cost_per_1k_tokens(ModelId.GPT_4O_MINI) == pytest.approx(0.00075)
        assert pricing_for("unknown").combined_cost_per_1k == pytest.approx(0.002)

    def test_negative_rates_rejected(self):
        with pytest.raises(ValueError):
            ModelPricing(-0.1, 0.1)
