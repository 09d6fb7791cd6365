"""
Calendar and session aggregation.

Groups usage events by local day, local month, or stream and prices
each group per model.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ai_usage_blocks.sources.models import UsageEvent

from .pricing import PricingTable
from .report import ModelUsageSummary, summarize_models
from .token_counter import TokenUsage, sum_usage

_COMPACT_DATE = re.compile(r"^\d{8}$")


@dataclass
class UsageRow:
    """Aggregated usage for one day, month or stream."""
    key: str
    usage: TokenUsage
    cost_usd: float
    models: Dict[str, ModelUsageSummary] = field(default_factory=dict)
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = {"key": self.key}
        data.update(self.usage.to_dict())
        data["costUSD"] = self.cost_usd
        data["models"] = {name: model.to_dict() for name, model in self.models.items()}
        if self.first_timestamp is not None:
            data["firstTimestamp"] = self.first_timestamp.isoformat()
        if self.last_timestamp is not None:
            data["lastTimestamp"] = self.last_timestamp.isoformat()
        return data


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA timezone name, UTC when none is given.

    Raises:
        ValueError: If the name is not a known timezone
    """
    if name is None or not name.strip() or name.strip().upper() == "UTC":
        return dt_timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name}")


def normalize_filter_date(value: Optional[str]) -> Optional[str]:
    """Normalize YYYYMMDD or YYYY-MM-DD to YYYY-MM-DD.

    Raises:
        ValueError: If the value is not in either format
    """
    if value is None:
        return None
    compact = value.replace("-", "").strip()
    if not _COMPACT_DATE.match(compact):
        raise ValueError(f"Invalid date format: {value}. Expected YYYYMMDD or YYYY-MM-DD.")
    try:
        datetime.strptime(compact, "%Y%m%d")
    except ValueError:
        raise ValueError(f"Invalid date format: {value}. Expected YYYYMMDD or YYYY-MM-DD.")
    return f"{compact[0:4]}-{compact[4:6]}-{compact[6:8]}"


def is_within_range(date_key: str, since: Optional[str] = None, until: Optional[str] = None) -> bool:
    """Inclusive date-key range check. Keys compare as strings."""
    value = date_key.replace("-", "")
    if since is not None and value < since.replace("-", ""):
        return False
    if until is not None and value > until.replace("-", ""):
        return False
    return True


def to_date_key(timestamp: datetime, tz: tzinfo) -> str:
    return timestamp.astimezone(tz).strftime("%Y-%m-%d")


def to_month_key(timestamp: datetime, tz: tzinfo) -> str:
    return timestamp.astimezone(tz).strftime("%Y-%m")


def _aggregate(
    events: List[UsageEvent],
    pricing_table: PricingTable,
    key_for: Callable[[UsageEvent], str],
    *,
    tz: tzinfo,
    since: Optional[str],
    until: Optional[str],
    order: str,
    sort_key: Callable[[UsageRow], Any] = lambda row: row.key,
) -> List[UsageRow]:
    groups: Dict[str, List[UsageEvent]] = {}
    for event in events:
        if not is_within_range(to_date_key(event.timestamp, tz), since, until):
            continue
        groups.setdefault(key_for(event), []).append(event)

    warned_models = set()
    rows: List[UsageRow] = []
    for key, group in groups.items():
        models = summarize_models(group, pricing_table, warned_models)
        rows.append(UsageRow(
            key=key,
            usage=sum_usage((event.usage for event in group), group[0].usage.convention),
            cost_usd=sum(model.cost_usd for model in models.values()),
            models=models,
            first_timestamp=min(event.timestamp for event in group),
            last_timestamp=max(event.timestamp for event in group),
        ))

    rows.sort(key=sort_key, reverse=(order == "desc"))
    return rows


def aggregate_daily(
    events: List[UsageEvent],
    pricing_table: PricingTable,
    *,
    timezone: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    order: str = "asc",
) -> List[UsageRow]:
    """Aggregate usage per local calendar day.

    Args:
        events: Usage events in any order
        pricing_table: Rates for events without a pre-computed cost
        timezone: IANA timezone for day boundaries, UTC by default
        since: Inclusive lower date bound (YYYY-MM-DD or YYYYMMDD)
        until: Inclusive upper date bound (YYYY-MM-DD or YYYYMMDD)
        order: "asc" or "desc" by date

    Returns:
        One row per day with usage
    """
    tz = resolve_timezone(timezone)
    return _aggregate(
        events,
        pricing_table,
        lambda event: to_date_key(event.timestamp, tz),
        tz=tz,
        since=normalize_filter_date(since),
        until=normalize_filter_date(until),
        order=order,
    )


def aggregate_monthly(
    events: List[UsageEvent],
    pricing_table: PricingTable,
    *,
    timezone: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    order: str = "asc",
) -> List[UsageRow]:
    """Aggregate usage per local calendar month (keys are YYYY-MM)."""
    tz = resolve_timezone(timezone)
    return _aggregate(
        events,
        pricing_table,
        lambda event: to_month_key(event.timestamp, tz),
        tz=tz,
        since=normalize_filter_date(since),
        until=normalize_filter_date(until),
        order=order,
    )


def aggregate_sessions(
    events: List[UsageEvent],
    pricing_table: PricingTable,
    *,
    timezone: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    order: str = "asc",
) -> List[UsageRow]:
    """Aggregate usage per stream key.

    Rows are ordered by last activity, so "asc" lists the most recently
    used session last.

    Date filters apply to each event's local date, so a session that
    spans the filter boundary only counts the events inside it.
    """
    tz = resolve_timezone(timezone)
    return _aggregate(
        events,
        pricing_table,
        lambda event: event.stream_key,
        tz=tz,
        since=normalize_filter_date(since),
        until=normalize_filter_date(until),
        order=order,
        sort_key=lambda row: (row.last_timestamp, row.key),
    )
