"""
Unit tests for pricing calculations.

Tests model resolution, per-convention cost accuracy, and error handling.
"""

from decimal import Decimal

import pytest

from ai_usage_blocks.core.pricing import (
    DEFAULT_PRICING_TABLE,
    ModelPricing,
    PricingTable,
    calculate_cost,
)
from ai_usage_blocks.core.token_counter import BillingConvention, TokenUsage


class TestPricingTable:
    """Test pricing table lookups."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for a built-in model."""
        pricing = DEFAULT_PRICING_TABLE.get_pricing("gpt-5")
        assert pricing.input_per_million == Decimal("1.25")
        assert pricing.cached_input_per_million == Decimal("0.125")
        assert pricing.output_per_million == Decimal("10.00")

    def test_unsupported_model_raises_error(self):
        """Verify error for unknown models."""
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            DEFAULT_PRICING_TABLE.get_pricing("unknown-model")

    def test_provider_prefix_stripped(self):
        """Provider-qualified names resolve to the bare model."""
        assert DEFAULT_PRICING_TABLE.resolve_model("openai/gpt-5") == "gpt-5"
        assert DEFAULT_PRICING_TABLE.resolve_model("openrouter/openai/gpt-5-mini") == "gpt-5-mini"
        assert DEFAULT_PRICING_TABLE.resolve_model("anthropic/claude-sonnet-4") == "claude-sonnet-4"

    def test_dated_snapshot_uses_longest_prefix(self):
        """Dated model ids map to the most specific family."""
        assert DEFAULT_PRICING_TABLE.resolve_model("claude-sonnet-4-20250514") == "claude-sonnet-4"
        assert DEFAULT_PRICING_TABLE.resolve_model("claude-opus-4-1-20250805") == "claude-opus-4-1"
        assert DEFAULT_PRICING_TABLE.resolve_model("gpt-5-mini-2025-08-07") == "gpt-5-mini"

    def test_supports(self):
        """supports() mirrors resolution."""
        assert DEFAULT_PRICING_TABLE.supports("gpt-5-codex")
        assert not DEFAULT_PRICING_TABLE.supports("llama-3")

    def test_with_overrides(self):
        """Overrides add and replace entries without touching the original."""
        custom = ModelPricing(input_per_million=Decimal("2"), output_per_million=Decimal("4"))
        table = DEFAULT_PRICING_TABLE.with_overrides({"gpt-5": custom, "local-model": custom})

        assert table.get_pricing("gpt-5") == custom
        assert table.get_pricing("local-model") == custom
        assert DEFAULT_PRICING_TABLE.get_pricing("gpt-5").input_per_million == Decimal("1.25")

    def test_negative_rate_rejected(self):
        """Rates cannot be negative."""
        with pytest.raises(ValueError, match="output_per_million cannot be negative"):
            ModelPricing(input_per_million=Decimal("1"), output_per_million=Decimal("-1"))


class TestCostCalculation:
    """Test cost calculation accuracy."""

    def test_openai_cost_bills_cached_input_at_cached_rate(self):
        """Cached tokens are removed from the input charge."""
        usage = TokenUsage(
            input_tokens=1_000_000,
            cache_read_tokens=400_000,
            output_tokens=100_000,
            reasoning_tokens=50_000,
            convention=BillingConvention.OPENAI,
        )
        cost = calculate_cost(usage, DEFAULT_PRICING_TABLE.get_pricing("gpt-5"))
        # 600K * $1.25/M + 400K * $0.125/M + 100K * $10/M
        assert cost == pytest.approx(0.75 + 0.05 + 1.00)

    def test_reasoning_not_billed_twice(self):
        """Reasoning is already inside output."""
        pricing = DEFAULT_PRICING_TABLE.get_pricing("gpt-5")
        base = TokenUsage(output_tokens=1000, convention=BillingConvention.OPENAI)
        with_reasoning = TokenUsage(output_tokens=1000, reasoning_tokens=800,
                                    convention=BillingConvention.OPENAI)
        assert calculate_cost(base, pricing) == calculate_cost(with_reasoning, pricing)

    def test_anthropic_cost_bills_each_counter(self):
        """Every Anthropic counter has its own rate."""
        usage = TokenUsage(
            input_tokens=1_000_000,
            output_tokens=1_000_000,
            cache_creation_tokens=1_000_000,
            cache_read_tokens=1_000_000,
        )
        cost = calculate_cost(usage, DEFAULT_PRICING_TABLE.get_pricing("claude-sonnet-4"))
        assert cost == pytest.approx(3.00 + 15.00 + 3.75 + 0.30)

    def test_cost_not_rounded(self):
        """Small costs keep their precision."""
        usage = TokenUsage(input_tokens=1, convention=BillingConvention.OPENAI)
        cost = calculate_cost(usage, DEFAULT_PRICING_TABLE.get_pricing("gpt-5"))
        assert cost == pytest.approx(0.00000125)

    def test_zero_usage_zero_cost(self):
        """Nothing used, nothing billed."""
        table = PricingTable({"m": ModelPricing(input_per_million=Decimal("5"),
                                                output_per_million=Decimal("5"))})
        assert calculate_cost(TokenUsage(), table.get_pricing("m")) == 0.0
