"""
Unit tests for token usage and billing conventions.
"""

import pytest

from ai_usage_blocks.core.token_counter import BillingConvention, TokenUsage, sum_usage


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_openai_total_excludes_cached_and_reasoning(self):
        """Cached input sits inside input and reasoning inside output."""
        usage = TokenUsage(
            input_tokens=1000,
            output_tokens=500,
            cache_read_tokens=400,
            reasoning_tokens=200,
            convention=BillingConvention.OPENAI,
        )
        assert usage.total_tokens == 1500
        assert usage.non_cached_input_tokens == 600
        assert usage.indicator_tokens == 1100

    def test_anthropic_total_sums_all_counters(self):
        """Anthropic counters are disjoint and all count towards the total."""
        usage = TokenUsage(
            input_tokens=100,
            output_tokens=50,
            cache_creation_tokens=20,
            cache_read_tokens=30,
        )
        assert usage.total_tokens == 200
        assert usage.non_cached_input_tokens == 100
        assert usage.indicator_tokens == 150

    def test_non_cached_input_never_negative(self):
        """Inconsistent cache counts clamp to zero."""
        usage = TokenUsage(input_tokens=10, cache_read_tokens=50, convention=BillingConvention.OPENAI)
        assert usage.non_cached_input_tokens == 0

    def test_negative_counter_rejected(self):
        """Negative counters are a programming error."""
        with pytest.raises(ValueError, match="input_tokens cannot be negative"):
            TokenUsage(input_tokens=-1)

    def test_non_integer_counter_rejected(self):
        """Counters must be integers."""
        with pytest.raises(ValueError, match="output_tokens must be an integer"):
            TokenUsage(output_tokens=1.5)

    def test_addition(self):
        """Usage values add field by field."""
        total = TokenUsage(input_tokens=1, output_tokens=2) + TokenUsage(input_tokens=3, cache_read_tokens=4)
        assert total == TokenUsage(input_tokens=4, output_tokens=2, cache_read_tokens=4)

    def test_mixed_convention_addition_rejected(self):
        """Adding usage from different conventions raises."""
        with pytest.raises(ValueError, match="different conventions"):
            TokenUsage(convention=BillingConvention.OPENAI) + TokenUsage()

    def test_is_empty(self):
        """Only all-zero usage is empty."""
        assert TokenUsage().is_empty
        assert not TokenUsage(reasoning_tokens=1).is_empty

    def test_to_dict_includes_derived_total(self):
        """Serialized usage carries the computed total."""
        data = TokenUsage(input_tokens=5, output_tokens=5).to_dict()
        assert data["totalTokens"] == 10
        assert data["inputTokens"] == 5


class TestSumUsage:
    """Test summing usage sequences."""

    def test_empty_sequence_uses_requested_convention(self):
        """Empty input yields empty usage in the given convention."""
        total = sum_usage([], BillingConvention.OPENAI)
        assert total.is_empty
        assert total.convention == BillingConvention.OPENAI

    def test_sums_in_order(self):
        """All items contribute."""
        usages = [TokenUsage(input_tokens=i) for i in range(1, 4)]
        assert sum_usage(usages).input_tokens == 6
