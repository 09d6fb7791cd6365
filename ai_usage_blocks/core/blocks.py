"""
Session block segmentation.

Partitions a time-ordered usage stream into fixed-duration billing
windows and inserts gap blocks for idle stretches longer than a window.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .token_counter import BillingConvention, TokenUsage, sum_usage
from ai_usage_blocks.sources.models import UsageEvent

DEFAULT_SESSION_DURATION = timedelta(hours=5)
DEFAULT_RECENT_DAYS = 3


@dataclass
class SessionBlock:
    """One billing window, or a synthetic gap between two windows."""
    id: str
    start_time: datetime
    end_time: datetime
    is_active: bool = False
    is_gap: bool = False
    actual_end_time: Optional[datetime] = None
    events: List[UsageEvent] = field(default_factory=list)
    token_counts: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float = 0.0
    models: List[str] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.token_counts.total_tokens


def floor_to_hour(timestamp: datetime) -> datetime:
    """Truncate a timestamp to the start of its hour."""
    return timestamp.replace(minute=0, second=0, microsecond=0)


def identify_session_blocks(
    events: List[UsageEvent],
    session_duration: timedelta = DEFAULT_SESSION_DURATION,
    *,
    now: datetime,
) -> List[SessionBlock]:
    """Group chronologically ordered events into session blocks.

    A new block starts when an event falls more than ``session_duration``
    after the current block's start, or more than ``session_duration``
    after the previous event. In the second case a gap block covering the
    idle time is inserted between the two real blocks. Block starts are
    floored to the hour.

    Args:
        events: Usage events sorted ascending by timestamp. Sorting is the
            caller's responsibility.
        session_duration: Length of one billing window
        now: Current time, used to decide which block is active

    Returns:
        Blocks in timeline order, gap blocks included
    """
    if not events:
        return []

    blocks: List[SessionBlock] = []
    block_start = floor_to_hour(events[0].timestamp)
    block_events: List[UsageEvent] = [events[0]]

    for event in events[1:]:
        previous = block_events[-1]
        since_block_start = event.timestamp - block_start
        since_previous = event.timestamp - previous.timestamp

        if since_block_start > session_duration or since_previous > session_duration:
            blocks.append(_create_block(block_start, block_events, session_duration, now))

            if since_previous > session_duration:
                blocks.append(_create_gap_block(
                    previous.timestamp,
                    event.timestamp,
                    session_duration,
                    previous.usage.convention,
                ))

            block_start = floor_to_hour(event.timestamp)
            block_events = [event]
        else:
            block_events.append(event)

    blocks.append(_create_block(block_start, block_events, session_duration, now))
    return blocks


def _create_block(
    start_time: datetime,
    events: List[UsageEvent],
    session_duration: timedelta,
    now: datetime,
) -> SessionBlock:
    """Finalize a real block from its working set of events."""
    end_time = start_time + session_duration
    actual_end_time = events[-1].timestamp
    # Both must hold: a block can be inside its window yet long idle.
    is_active = (now - actual_end_time) < session_duration and now < end_time

    convention = events[0].usage.convention
    token_counts = sum_usage((event.usage for event in events), convention)
    cost = sum(event.cost_usd or 0.0 for event in events)

    models: List[str] = []
    for event in events:
        if event.model not in models:
            models.append(event.model)

    return SessionBlock(
        id=start_time.isoformat(),
        start_time=start_time,
        end_time=end_time,
        is_active=is_active,
        actual_end_time=actual_end_time,
        events=list(events),
        token_counts=token_counts,
        cost_usd=cost,
        models=models,
    )


def _create_gap_block(
    last_activity: datetime,
    next_activity: datetime,
    session_duration: timedelta,
    convention: BillingConvention,
) -> SessionBlock:
    """Synthetic block covering idle time after the last window closed."""
    start_time = last_activity + session_duration
    return SessionBlock(
        id=f"gap-{start_time.isoformat()}",
        start_time=start_time,
        end_time=next_activity,
        is_active=False,
        is_gap=True,
        token_counts=TokenUsage.empty(convention),
    )


def segment_streams(
    events: List[UsageEvent],
    session_duration: timedelta = DEFAULT_SESSION_DURATION,
    *,
    now: datetime,
) -> Dict[str, List[SessionBlock]]:
    """Segment each stream key independently.

    Event order within a stream is preserved from the input.
    """
    by_stream: Dict[str, List[UsageEvent]] = {}
    for event in events:
        by_stream.setdefault(event.stream_key, []).append(event)

    return {
        key: identify_session_blocks(stream_events, session_duration, now=now)
        for key, stream_events in by_stream.items()
    }


def filter_recent_blocks(
    blocks: List[SessionBlock],
    *,
    now: datetime,
    days: int = DEFAULT_RECENT_DAYS,
) -> List[SessionBlock]:
    """Keep active blocks and blocks starting within the last ``days`` days."""
    cutoff = now - timedelta(days=days)
    return [block for block in blocks if block.is_active or block.start_time >= cutoff]


def max_block_tokens(blocks: List[SessionBlock]) -> int:
    """Largest total among completed real blocks, 0 when there are none."""
    totals = [
        block.total_tokens
        for block in blocks
        if not block.is_gap and not block.is_active
    ]
    return max(totals, default=0)
