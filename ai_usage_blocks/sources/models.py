"""
Data models for usage sources.

Defines the normalized event every loader produces.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ai_usage_blocks.core.token_counter import TokenUsage


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of token usage for one model call.

    Created once per loaded log record and never modified afterwards.
    ``timestamp`` is timezone-aware UTC.
    """
    timestamp: datetime
    stream_key: str
    model: str
    usage: TokenUsage
    cost_usd: Optional[float] = None
    is_fallback_model: bool = False
    message_id: Optional[str] = None
    request_id: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 log timestamp into an aware UTC datetime.

    Naive timestamps are taken as UTC. Returns None for anything that is
    not a parseable string.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_count(value: object) -> int:
    """Turn a JSON counter into a non-negative int, 0 when unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)
