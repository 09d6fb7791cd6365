"""
Burn rate and end-of-window projection.

Derives consumption rates from a block's own event span and linearly
extrapolates them to the close of the window.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .blocks import SessionBlock


@dataclass(frozen=True)
class BurnRate:
    """Observed consumption rate over a block's event span."""
    tokens_per_minute: float
    tokens_per_minute_for_indicator: float  # non-cached input + output only
    cost_per_hour: float


@dataclass(frozen=True)
class Projection:
    """Projected totals at window close if the current pace continues."""
    total_tokens: int
    total_cost: float
    remaining_minutes: float


def calculate_burn_rate(block: SessionBlock) -> Optional[BurnRate]:
    """Compute the burn rate for a block.

    Returns None for gap blocks, empty blocks, and blocks whose events
    span no time (a single event, or identical timestamps).
    """
    if block.is_gap or not block.events:
        return None

    first = block.events[0]
    last = block.events[-1]
    duration_minutes = (last.timestamp - first.timestamp).total_seconds() / 60
    if not math.isfinite(duration_minutes) or duration_minutes <= 0:
        return None

    return BurnRate(
        tokens_per_minute=block.token_counts.total_tokens / duration_minutes,
        tokens_per_minute_for_indicator=block.token_counts.indicator_tokens / duration_minutes,
        cost_per_hour=(block.cost_usd / duration_minutes) * 60,
    )


def project_block_usage(
    block: SessionBlock,
    *,
    now: datetime,
    burn_rate: Optional[BurnRate] = None,
) -> Optional[Projection]:
    """Project a block's totals to the end of its window.

    Only active, non-gap blocks with a defined burn rate and time left in
    the window get a projection.

    Args:
        block: Block to project
        now: Current time
        burn_rate: Precomputed burn rate; computed from the block when omitted

    Returns:
        Projection, or None when the block cannot be projected
    """
    if not block.is_active or block.is_gap:
        return None

    rate = burn_rate if burn_rate is not None else calculate_burn_rate(block)
    if rate is None:
        return None

    remaining_minutes = max(0.0, (block.end_time - now).total_seconds() / 60)
    if remaining_minutes <= 0:
        return None

    projected_tokens = block.total_tokens + rate.tokens_per_minute * remaining_minutes
    projected_cost = block.cost_usd + (rate.cost_per_hour / 60) * remaining_minutes

    return Projection(
        total_tokens=round(projected_tokens),
        total_cost=round(projected_cost, 2),
        remaining_minutes=remaining_minutes,
    )
