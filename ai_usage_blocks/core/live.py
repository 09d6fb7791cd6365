"""
Live block monitoring.

Re-runs segmentation and reporting on a fixed interval until stopped.
Every tick is a complete re-run over freshly loaded events.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ai_usage_blocks.sources.models import UsageEvent

from .blocks import DEFAULT_SESSION_DURATION, identify_session_blocks, max_block_tokens
from .budget import parse_token_limit
from .pricing import DEFAULT_PRICING_TABLE, PricingTable
from .report import BlockSummary, build_blocks_report

logger = logging.getLogger(__name__)

MIN_REFRESH_SECONDS = 1.0
MAX_REFRESH_SECONDS = 60.0


@dataclass(frozen=True)
class LiveConfig:
    """Settings for the live monitor."""
    session_duration: timedelta = DEFAULT_SESSION_DURATION
    token_limit: Optional[str] = None  # integer string or "max"
    refresh_interval_seconds: float = 5.0
    pricing_table: PricingTable = DEFAULT_PRICING_TABLE


@dataclass(frozen=True)
class LiveSnapshot:
    """What one tick of the monitor displays."""
    blocks: List[BlockSummary]
    generated_at: datetime
    token_limit: Optional[int] = None


def clamp_refresh_interval(seconds: float) -> float:
    """Clamp a refresh interval to the supported range."""
    return min(max(seconds, MIN_REFRESH_SECONDS), MAX_REFRESH_SECONDS)


def generate_live_snapshot(
    events: List[UsageEvent],
    config: LiveConfig,
    *,
    now: datetime,
) -> LiveSnapshot:
    """Build the report for active blocks.

    When no block is active the most recent real block is shown instead,
    so the display is never blank while there is any history.
    """
    if not events:
        return LiveSnapshot(blocks=[], generated_at=now)

    blocks = identify_session_blocks(events, config.session_duration, now=now)
    token_limit = parse_token_limit(config.token_limit, max_block_tokens(blocks))

    targets = [block for block in blocks if block.is_active]
    if not targets:
        real_blocks = [block for block in blocks if not block.is_gap]
        targets = real_blocks[-1:]

    report = build_blocks_report(targets, config.pricing_table, now=now, token_limit=token_limit)
    return LiveSnapshot(blocks=report.blocks, generated_at=now, token_limit=token_limit)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def run_live_monitor(
    load_events: Callable[[], List[UsageEvent]],
    render: Callable[[LiveSnapshot], None],
    config: LiveConfig,
    stop_event: threading.Event,
    clock: Callable[[], datetime] = _utc_now,
) -> int:
    """Poll, report and render until ``stop_event`` is set.

    Args:
        load_events: Returns the current time-sorted event list
        render: Displays one snapshot
        config: Monitor settings
        stop_event: Set by the caller to stop the loop
        clock: Source of the current time

    Returns:
        Number of completed ticks
    """
    interval = clamp_refresh_interval(config.refresh_interval_seconds)
    logger.debug("Starting live monitor with %.1fs refresh interval", interval)

    ticks = 0
    while not stop_event.is_set():
        events = load_events()
        render(generate_live_snapshot(events, config, now=clock()))
        ticks += 1
        if stop_event.wait(interval):
            break

    logger.debug("Live monitor stopped after %d ticks", ticks)
    return ticks
