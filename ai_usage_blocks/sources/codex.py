"""
Codex CLI session log loader.

Reads ``*.jsonl`` rollout files and turns token_count events into
usage deltas, reconciling cumulative totals per file.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ai_usage_blocks.core.reconciler import RawSnapshot, SnapshotStore, reconcile_stream
from ai_usage_blocks.core.token_counter import BillingConvention

from .models import UsageEvent, coerce_count, parse_timestamp

logger = logging.getLogger(__name__)

CODEX_HOME_ENV = "CODEX_HOME"
DEFAULT_CODEX_HOME = Path("~/.codex")
SESSION_SUBDIR = "sessions"
SESSION_GLOB = "*.jsonl"
FALLBACK_MODEL = "gpt-5"


def default_session_dirs() -> List[Path]:
    """Session directory from ``CODEX_HOME``, or ``~/.codex/sessions``."""
    home = os.environ.get(CODEX_HOME_ENV, "").strip()
    base = Path(home) if home else DEFAULT_CODEX_HOME
    return [base.expanduser() / SESSION_SUBDIR]


def normalize_usage(value: Any) -> Optional[RawSnapshot]:
    """Build a snapshot from a Codex usage object.

    Cached input is capped at input since it is a subset of it.
    """
    if not isinstance(value, dict):
        return None

    input_tokens = coerce_count(value.get("input_tokens"))
    cached = value.get("cached_input_tokens", value.get("cache_read_input_tokens"))
    reported_total = coerce_count(value.get("total_tokens"))

    return RawSnapshot(
        input_tokens=input_tokens,
        output_tokens=coerce_count(value.get("output_tokens")),
        cache_read_tokens=min(coerce_count(cached), input_tokens),
        reasoning_tokens=coerce_count(value.get("reasoning_output_tokens")),
        total_tokens=reported_total or None,
    )


def extract_model(payload: Any) -> Optional[str]:
    """Find a model name in a payload or its ``info`` object."""
    if not isinstance(payload, dict):
        return None

    info = payload.get("info")
    candidates = []
    if isinstance(info, dict):
        metadata = info.get("metadata")
        candidates.extend([
            info.get("model"),
            info.get("model_name"),
            metadata.get("model") if isinstance(metadata, dict) else None,
        ])
    metadata = payload.get("metadata")
    candidates.extend([
        payload.get("model"),
        metadata.get("model") if isinstance(metadata, dict) else None,
    ])

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def parse_session_file(
    path: Path,
    stream_key: str,
    store: Optional[SnapshotStore] = None,
    fallback_model: str = FALLBACK_MODEL,
) -> List[UsageEvent]:
    """Parse one Codex session file into usage events.

    ``turn_context`` lines set the model for following events. Each
    ``token_count`` event uses ``last_token_usage`` as its delta when
    present; otherwise ``total_token_usage`` is reconciled against the
    previous total of the same file. All-zero deltas are dropped.

    Args:
        path: Session file
        stream_key: Key identifying the session
        store: Snapshot store for cumulative totals; a fresh one by default
        fallback_model: Model used when the log carries no model metadata

    Returns:
        Events in file order
    """
    if store is None:
        store = SnapshotStore()

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Failed to read Codex session file %s: %s", path, e)
        return []

    events: List[UsageEvent] = []
    current_model: Optional[str] = None

    for line_number, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable line %d in %s", line_number, path)
            continue
        if not isinstance(entry, dict):
            continue

        entry_type = entry.get("type")
        payload = entry.get("payload")

        if entry_type == "turn_context":
            model = extract_model(payload)
            if model is not None:
                current_model = model
            continue

        if entry_type != "event_msg" or not isinstance(payload, dict):
            continue
        if payload.get("type") != "token_count":
            continue

        timestamp = parse_timestamp(entry.get("timestamp"))
        if timestamp is None:
            continue

        event = _token_count_event(payload, timestamp, stream_key, store, current_model, fallback_model)
        if event is not None:
            events.append(event)

    return events


def _token_count_event(
    payload: Dict[str, Any],
    timestamp: datetime,
    stream_key: str,
    store: SnapshotStore,
    current_model: Optional[str],
    fallback_model: str,
) -> Optional[UsageEvent]:
    info = payload.get("info")
    if not isinstance(info, dict):
        return None

    last_usage = normalize_usage(info.get("last_token_usage"))
    total_usage = normalize_usage(info.get("total_token_usage"))

    if last_usage is not None:
        usage = last_usage.to_usage(BillingConvention.OPENAI)
        if total_usage is not None:
            store.put(stream_key, total_usage)
    elif total_usage is not None:
        usage = reconcile_stream(store, stream_key, total_usage, BillingConvention.OPENAI).usage
    else:
        return None

    if usage.is_empty:
        return None

    model = extract_model(payload) or current_model
    return UsageEvent(
        timestamp=timestamp,
        stream_key=stream_key,
        model=model or fallback_model,
        usage=usage,
        is_fallback_model=model is None,
    )


def load_codex_events(directory: Path, key_prefix: str = "") -> List[UsageEvent]:
    """Load events from every session file under a directory.

    The stream key of a file is ``key_prefix`` followed by its path
    relative to ``directory`` without the ``.jsonl`` suffix.
    """
    events: List[UsageEvent] = []
    store = SnapshotStore()
    for path in sorted(directory.rglob(SESSION_GLOB)):
        stream_key = key_prefix + path.relative_to(directory).with_suffix("").as_posix()
        events.extend(parse_session_file(path, stream_key, store))
    return events
