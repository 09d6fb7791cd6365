"""
Token budget classification.

Compares a block's token usage against an optional configured limit.

Status precedence:
1. exceeds - projected (or actual) total at or over the limit
2. warning - projected (or actual) total at or over 80% of the limit
3. ok      - everything else
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .blocks import SessionBlock
from .projection import Projection

WARNING_THRESHOLD = 0.8
MAX_LIMIT_SENTINEL = "max"


class BudgetStatus(Enum):
    """Budget status for a block, in order of severity."""
    OK = "ok"
    WARNING = "warning"
    EXCEEDS = "exceeds"


@dataclass(frozen=True)
class BudgetResult:
    """Classification of one block against a token limit."""
    status: BudgetStatus
    usage_percent: float  # actual tokens / limit, as a fraction
    token_limit: int


def classify_budget(
    block: SessionBlock,
    token_limit: Optional[int],
    projection: Optional[Projection] = None,
) -> Optional[BudgetResult]:
    """Classify a block against a token limit.

    ``usage_percent`` is always based on the actual total, while the
    status is based on the projected total when a projection exists.
    The mismatch is kept on purpose so warnings show before the limit is
    literally crossed.

    Args:
        block: Block to classify
        token_limit: Configured token limit; None or non-positive disables classification
        projection: Projection for the block, if one exists

    Returns:
        BudgetResult, or None when no limit is configured
    """
    if token_limit is None or token_limit <= 0:
        return None

    actual = block.total_tokens
    basis = projection.total_tokens if projection is not None else actual

    if basis >= token_limit:
        status = BudgetStatus.EXCEEDS
    elif basis >= token_limit * WARNING_THRESHOLD:
        status = BudgetStatus.WARNING
    else:
        status = BudgetStatus.OK

    return BudgetResult(
        status=status,
        usage_percent=actual / token_limit,
        token_limit=token_limit,
    )


def parse_token_limit(value: Optional[str], max_from_all: int) -> Optional[int]:
    """Parse a token limit option.

    Args:
        value: Integer string, "max", or None/empty for no limit
        max_from_all: Largest block total observed, used for "max"

    Returns:
        Token limit, or None when no usable limit results
    """
    if value is None:
        return None

    trimmed = str(value).strip().lower()
    if not trimmed:
        return None

    if trimmed == MAX_LIMIT_SENTINEL:
        return max_from_all if max_from_all > 0 else None

    try:
        limit = int(trimmed)
    except ValueError:
        return None
    return limit if limit > 0 else None
