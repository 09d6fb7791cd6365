"""
Pricing calculations and rate management.

Handles cost computations for OpenAI and Anthropic models.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple

from .token_counter import BillingConvention, TokenUsage

MILLION = Decimal("1000000")

# Tried in order when a model name is not found verbatim.
PROVIDER_PREFIXES: Tuple[str, ...] = (
    "openai/",
    "azure/",
    "openrouter/openai/",
    "anthropic/",
)


@dataclass(frozen=True)
class ModelPricing:
    """USD rates per million tokens for a specific model."""
    input_per_million: Decimal
    output_per_million: Decimal
    cached_input_per_million: Decimal = Decimal("0")  # cache read
    cache_creation_per_million: Decimal = Decimal("0")

    def __post_init__(self):
        """Validate rates are non-negative."""
        for name in ("input_per_million", "output_per_million",
                     "cached_input_per_million", "cache_creation_per_million"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass(frozen=True)
class PricingTable:
    """Pricing table keyed by model name."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Resolution order: exact name, name with a known provider prefix,
        then the longest table key the name starts with (dated snapshots
        such as ``claude-sonnet-4-20250514``).

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        resolved = self.resolve_model(model)
        if resolved is None:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[resolved]

    def resolve_model(self, model: str) -> Optional[str]:
        """Return the table key used for a model name, or None."""
        if model in self.prices:
            return model

        for prefix in PROVIDER_PREFIXES:
            if model.startswith(prefix) and model[len(prefix):] in self.prices:
                return model[len(prefix):]
            if f"{prefix}{model}" in self.prices:
                return f"{prefix}{model}"

        bare = model
        for prefix in PROVIDER_PREFIXES:
            if bare.startswith(prefix):
                bare = bare[len(prefix):]
                break

        candidates = [key for key in self.prices if bare.startswith(key)]
        if not candidates:
            return None
        return max(candidates, key=len)

    def supports(self, model: str) -> bool:
        return self.resolve_model(model) is not None

    def with_overrides(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """New table with entries added or replaced."""
        merged = dict(self.prices)
        merged.update(overrides)
        return PricingTable(merged)


DEFAULT_PRICING_TABLE = PricingTable({
    "gpt-5": ModelPricing(
        input_per_million=Decimal("1.25"),
        cached_input_per_million=Decimal("0.125"),
        output_per_million=Decimal("10.00"),
    ),
    "gpt-5-codex": ModelPricing(
        input_per_million=Decimal("1.25"),
        cached_input_per_million=Decimal("0.125"),
        output_per_million=Decimal("10.00"),
    ),
    "gpt-5-mini": ModelPricing(
        input_per_million=Decimal("0.25"),
        cached_input_per_million=Decimal("0.025"),
        output_per_million=Decimal("2.00"),
    ),
    "gpt-5-nano": ModelPricing(
        input_per_million=Decimal("0.05"),
        cached_input_per_million=Decimal("0.005"),
        output_per_million=Decimal("0.40"),
    ),
    "claude-opus-4": ModelPricing(
        input_per_million=Decimal("15.00"),
        cached_input_per_million=Decimal("1.50"),
        cache_creation_per_million=Decimal("18.75"),
        output_per_million=Decimal("75.00"),
    ),
    "claude-opus-4-1": ModelPricing(
        input_per_million=Decimal("15.00"),
        cached_input_per_million=Decimal("1.50"),
        cache_creation_per_million=Decimal("18.75"),
        output_per_million=Decimal("75.00"),
    ),
    "claude-sonnet-4": ModelPricing(
        input_per_million=Decimal("3.00"),
        cached_input_per_million=Decimal("0.30"),
        cache_creation_per_million=Decimal("3.75"),
        output_per_million=Decimal("15.00"),
    ),
    "claude-sonnet-4-5": ModelPricing(
        input_per_million=Decimal("3.00"),
        cached_input_per_million=Decimal("0.30"),
        cache_creation_per_million=Decimal("3.75"),
        output_per_million=Decimal("15.00"),
    ),
    "claude-haiku-4-5": ModelPricing(
        input_per_million=Decimal("1.00"),
        cached_input_per_million=Decimal("0.10"),
        cache_creation_per_million=Decimal("1.25"),
        output_per_million=Decimal("5.00"),
    ),
    "claude-3-5-haiku": ModelPricing(
        input_per_million=Decimal("0.80"),
        cached_input_per_million=Decimal("0.08"),
        cache_creation_per_million=Decimal("1.00"),
        output_per_million=Decimal("4.00"),
    ),
})


def calculate_cost(usage: TokenUsage, pricing: ModelPricing) -> float:
    """Calculate USD cost for one usage value.

    OpenAI convention: cached tokens are part of input and billed at the
    cached rate, reasoning tokens are part of output.
    Anthropic convention: every counter is billed at its own rate.

    The result is not rounded; rounding happens at display time so that
    block and report sums stay exact.

    Args:
        usage: Token usage to price
        pricing: Rates for the model

    Returns:
        Cost in USD
    """
    if usage.convention == BillingConvention.OPENAI:
        cached = min(usage.cache_read_tokens, usage.input_tokens)
        cost = (
            Decimal(usage.input_tokens - cached) * pricing.input_per_million
            + Decimal(cached) * pricing.cached_input_per_million
            + Decimal(usage.output_tokens) * pricing.output_per_million
        )
    else:
        cost = (
            Decimal(usage.input_tokens) * pricing.input_per_million
            + Decimal(usage.cache_read_tokens) * pricing.cached_input_per_million
            + Decimal(usage.cache_creation_tokens) * pricing.cache_creation_per_million
            + Decimal(usage.output_tokens) * pricing.output_per_million
        )

    return float(cost / MILLION)
