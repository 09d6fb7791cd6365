"""
Token counting and usage tracking.

Defines the normalized usage delta and the per-source billing conventions
that decide how a total is derived from the individual counters.
"""

from dataclasses import dataclass
from enum import Enum


class BillingConvention(Enum):
    """How a source reports and bills its token counters.

    OPENAI: cached input is a subset of input, reasoning is a subset of
    output. Total is input + output.

    ANTHROPIC: input, output, cache creation and cache read are disjoint
    and there is no reasoning counter. Total is the sum of all four.
    """
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class TokenUsage:
    """Incremental token usage attributable to one event.

    Contains exact token counts. The total is always derived from the
    counters, never stored.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    reasoning_tokens: int = 0
    convention: BillingConvention = BillingConvention.ANTHROPIC

    def __post_init__(self):
        """Validate counters are non-negative integers."""
        for name in ("input_tokens", "output_tokens", "cache_read_tokens",
                     "cache_creation_tokens", "reasoning_tokens"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens according to the billing convention."""
        if self.convention == BillingConvention.OPENAI:
            return self.input_tokens + self.output_tokens
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    @property
    def non_cached_input_tokens(self) -> int:
        """Input tokens that were not served from cache."""
        if self.convention == BillingConvention.OPENAI:
            return max(self.input_tokens - self.cache_read_tokens, 0)
        return self.input_tokens

    @property
    def indicator_tokens(self) -> int:
        """Non-cached input plus output, used for burn rate display."""
        return self.non_cached_input_tokens + self.output_tokens

    @property
    def is_empty(self) -> bool:
        """True when every counter is zero."""
        return not (
            self.input_tokens
            or self.output_tokens
            or self.cache_read_tokens
            or self.cache_creation_tokens
            or self.reasoning_tokens
        )

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        if other.convention != self.convention:
            raise ValueError(
                f"Cannot add usage with different conventions: "
                f"{self.convention.value} and {other.convention.value}"
            )
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
            convention=self.convention,
        )

    @classmethod
    def empty(cls, convention: BillingConvention = BillingConvention.ANTHROPIC) -> "TokenUsage":
        """Zero usage under the given convention."""
        return cls(convention=convention)

    def to_dict(self) -> dict:
        """Counters plus derived total, keyed for JSON output."""
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "cacheCreationTokens": self.cache_creation_tokens,
            "reasoningTokens": self.reasoning_tokens,
            "totalTokens": self.total_tokens,
        }


def sum_usage(usages, convention: BillingConvention = BillingConvention.ANTHROPIC) -> TokenUsage:
    """Sum an iterable of usage values, starting from empty usage.

    The convention of the first item wins when the iterable is not empty.
    """
    total = None
    for usage in usages:
        total = usage if total is None else total + usage
    return total if total is not None else TokenUsage.empty(convention)
