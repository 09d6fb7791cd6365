"""
Delta reconciliation for cumulative usage counters.

Some sources report running totals rather than per-event usage. This
module turns consecutive readings into incremental deltas and treats any
decreasing counter as a reset of the underlying process.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .token_counter import BillingConvention, TokenUsage

logger = logging.getLogger(__name__)


class DeltaKind(Enum):
    """Outcome of reconciling one snapshot."""
    DELTA = "delta"  # difference against the previous reading (or first reading)
    RESET = "reset"  # a counter went backwards; snapshot taken as a fresh baseline


@dataclass(frozen=True)
class RawSnapshot:
    """Cumulative usage reading for one stream at one point in time.

    ``total_tokens`` is whatever the source reported. Reconciliation never
    reads it: totals are recomputed from the counters.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: Optional[int] = None

    def to_usage(self, convention: BillingConvention) -> TokenUsage:
        """Interpret the reading itself as a usage delta."""
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_read_tokens=self.cache_read_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
            reasoning_tokens=self.reasoning_tokens,
            convention=convention,
        )


@dataclass(frozen=True)
class ReconciledDelta:
    """Usage attributable to the newest snapshot, tagged with how it was derived."""
    kind: DeltaKind
    usage: TokenUsage

    @property
    def is_reset(self) -> bool:
        return self.kind == DeltaKind.RESET


_COUNTERS = (
    "input_tokens",
    "output_tokens",
    "cache_read_tokens",
    "cache_creation_tokens",
    "reasoning_tokens",
)


def reconcile(
    current: RawSnapshot,
    previous: Optional[RawSnapshot],
    convention: BillingConvention = BillingConvention.OPENAI,
) -> ReconciledDelta:
    """Compute the incremental usage between two cumulative readings.

    Rules:
    - No previous reading: the current reading is the delta.
    - Every counter grew or stayed: the delta is the field-wise difference.
    - Any counter shrank: the counter was reset, so the whole current
      reading is the delta. Individual fields are never clamped.

    Args:
        current: Newest cumulative reading
        previous: Prior reading for the same stream, if any
        convention: Billing convention of the source

    Returns:
        ReconciledDelta with the derived usage and whether a reset occurred
    """
    if previous is None:
        return ReconciledDelta(DeltaKind.DELTA, current.to_usage(convention))

    diffs = {name: getattr(current, name) - getattr(previous, name) for name in _COUNTERS}
    if any(value < 0 for value in diffs.values()):
        return ReconciledDelta(DeltaKind.RESET, current.to_usage(convention))

    return ReconciledDelta(DeltaKind.DELTA, TokenUsage(convention=convention, **diffs))


class SnapshotStore:
    """Last observed snapshot per stream key.

    Owned by the caller and threaded through successive reconcile calls.
    """

    def __init__(self):
        self._snapshots: Dict[str, RawSnapshot] = {}

    def get(self, key: str) -> Optional[RawSnapshot]:
        return self._snapshots.get(key)

    def put(self, key: str, snapshot: RawSnapshot) -> None:
        self._snapshots[key] = snapshot

    def clear(self) -> None:
        self._snapshots.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


def reconcile_stream(
    store: SnapshotStore,
    key: str,
    snapshot: RawSnapshot,
    convention: BillingConvention = BillingConvention.OPENAI,
) -> ReconciledDelta:
    """Reconcile a snapshot against the store and record it as the new previous.

    The snapshot is stored whether or not a reset was detected.
    """
    result = reconcile(snapshot, store.get(key), convention)
    if result.is_reset:
        logger.debug("Counter reset detected for stream %s; using snapshot as new baseline", key)
    store.put(key, snapshot)
    return result
