"""
Claude Code transcript loader.

Reads project ``*.jsonl`` transcripts. Each assistant message carries its
own usage, so no reconciliation is needed; duplicated messages are
dropped by message and request id.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Set

from ai_usage_blocks.core.token_counter import BillingConvention, TokenUsage

from .models import UsageEvent, coerce_count, parse_timestamp

logger = logging.getLogger(__name__)

CLAUDE_CONFIG_DIR_ENV = "CLAUDE_CONFIG_DIR"
DEFAULT_CLAUDE_DIRS = (Path("~/.config/claude"), Path("~/.claude"))
PROJECTS_SUBDIR = "projects"
TRANSCRIPT_GLOB = "*.jsonl"
UNKNOWN_MODEL = "unknown"


def default_project_dirs() -> List[Path]:
    """Project directories from ``CLAUDE_CONFIG_DIR`` or the default locations.

    ``CLAUDE_CONFIG_DIR`` may list several directories separated by commas.
    """
    configured = os.environ.get(CLAUDE_CONFIG_DIR_ENV, "").strip()
    if configured:
        bases = [Path(part.strip()) for part in configured.split(",") if part.strip()]
    else:
        bases = list(DEFAULT_CLAUDE_DIRS)
    return [base.expanduser() / PROJECTS_SUBDIR for base in bases]


def _dedup_key(entry: dict) -> Optional[str]:
    message = entry.get("message")
    message_id = message.get("id") if isinstance(message, dict) else None
    request_id = entry.get("requestId")
    if isinstance(message_id, str) and isinstance(request_id, str):
        return f"{message_id}:{request_id}"
    return None


def parse_transcript_line(entry: Any, fallback_stream_key: str) -> Optional[UsageEvent]:
    """Turn one transcript entry into an event, or None if it has no usage."""
    if not isinstance(entry, dict):
        return None

    timestamp = parse_timestamp(entry.get("timestamp"))
    message = entry.get("message")
    if timestamp is None or not isinstance(message, dict):
        return None
    usage = message.get("usage")
    if not isinstance(usage, dict):
        return None

    model = message.get("model")
    has_model = isinstance(model, str) and bool(model.strip())

    cost = entry.get("costUSD")
    cost_usd = float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else None

    session_id = entry.get("sessionId")
    stream_key = session_id if isinstance(session_id, str) and session_id else fallback_stream_key

    request_id = entry.get("requestId")
    message_id = message.get("id")

    return UsageEvent(
        timestamp=timestamp,
        stream_key=stream_key,
        model=model.strip() if has_model else UNKNOWN_MODEL,
        usage=TokenUsage(
            input_tokens=coerce_count(usage.get("input_tokens")),
            output_tokens=coerce_count(usage.get("output_tokens")),
            cache_creation_tokens=coerce_count(usage.get("cache_creation_input_tokens")),
            cache_read_tokens=coerce_count(usage.get("cache_read_input_tokens")),
            convention=BillingConvention.ANTHROPIC,
        ),
        cost_usd=cost_usd,
        is_fallback_model=not has_model,
        message_id=message_id if isinstance(message_id, str) else None,
        request_id=request_id if isinstance(request_id, str) else None,
    )


def parse_transcript_file(path: Path, seen: Optional[Set[str]] = None) -> List[UsageEvent]:
    """Parse one transcript file.

    Args:
        path: Transcript file
        seen: Dedup keys already loaded; updated in place

    Returns:
        Events in file order, duplicates removed
    """
    if seen is None:
        seen = set()

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Failed to read Claude transcript %s: %s", path, e)
        return []

    events: List[UsageEvent] = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable line %d in %s", line_number, path)
            continue

        event = parse_transcript_line(entry, path.stem)
        if event is None:
            continue

        key = _dedup_key(entry)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        events.append(event)

    return events


def load_claude_events(directory: Path, seen: Optional[Set[str]] = None) -> List[UsageEvent]:
    """Load events from every transcript under a projects directory."""
    if seen is None:
        seen = set()
    events: List[UsageEvent] = []
    for path in sorted(directory.rglob(TRANSCRIPT_GLOB)):
        events.extend(parse_transcript_file(path, seen))
    return events
