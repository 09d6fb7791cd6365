"""
Blocks report assembly.

Prices each block per model, attaches burn rate, projection and budget
status, and renders the result as a JSON-ready document.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from ai_usage_blocks.sources.models import UsageEvent

from .blocks import SessionBlock
from .budget import BudgetResult, classify_budget
from .pricing import PricingTable, calculate_cost
from .projection import BurnRate, Projection, calculate_burn_rate, project_block_usage
from .token_counter import BillingConvention, TokenUsage, sum_usage

logger = logging.getLogger(__name__)


@dataclass
class ModelUsageSummary:
    """Usage and cost of one model within a block."""
    usage: TokenUsage
    cost_usd: float = 0.0
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = self.usage.to_dict()
        data["costUSD"] = self.cost_usd
        data["isFallback"] = self.is_fallback
        return data


@dataclass
class BlockSummary:
    """A priced block with its derived metrics."""
    block: SessionBlock
    models: Dict[str, ModelUsageSummary] = field(default_factory=dict)
    burn_rate: Optional[BurnRate] = None
    projection: Optional[Projection] = None
    budget: Optional[BudgetResult] = None


@dataclass
class ReportTotals:
    """Summed token counts and cost across all blocks of a report."""
    token_counts: TokenUsage
    cost_usd: float


@dataclass
class BlocksReport:
    blocks: List[BlockSummary]
    totals: ReportTotals


def build_blocks_report(
    blocks: List[SessionBlock],
    pricing_table: PricingTable,
    *,
    now: datetime,
    token_limit: Optional[int] = None,
) -> BlocksReport:
    """Price blocks and compute their burn rate, projection and budget status.

    Each block's ``cost_usd`` is replaced with the priced total. Events
    that already carry a cost keep it; other events are priced per model.
    Models missing from the pricing table contribute zero cost.

    Args:
        blocks: Blocks to report on, in display order
        pricing_table: Rates used for events without a pre-computed cost
        now: Current time
        token_limit: Optional token limit for budget classification

    Returns:
        BlocksReport with one summary per block and overall totals
    """
    warned_models: Set[str] = set()
    summaries: List[BlockSummary] = []

    for block in blocks:
        models = summarize_models(block.events, pricing_table, warned_models)
        block.cost_usd = sum(summary.cost_usd for summary in models.values())

        burn_rate = calculate_burn_rate(block)
        projection = project_block_usage(block, now=now, burn_rate=burn_rate)
        budget = classify_budget(block, token_limit, projection)

        summaries.append(BlockSummary(
            block=block,
            models=models,
            burn_rate=burn_rate,
            projection=projection,
            budget=budget,
        ))

    convention = blocks[0].token_counts.convention if blocks else BillingConvention.ANTHROPIC
    totals = ReportTotals(
        token_counts=sum_usage((block.token_counts for block in blocks), convention),
        cost_usd=sum(block.cost_usd for block in blocks),
    )
    return BlocksReport(blocks=summaries, totals=totals)


def summarize_models(
    events: Iterable[UsageEvent],
    pricing_table: PricingTable,
    warned_models: Optional[Set[str]] = None,
) -> Dict[str, ModelUsageSummary]:
    """Group events by model and price each group.

    Args:
        events: Events to summarize
        pricing_table: Rates used for events without a pre-computed cost
        warned_models: Models already warned about; updated in place

    Returns:
        Summaries keyed by model name, in first-seen order
    """
    if warned_models is None:
        warned_models = set()
    models: Dict[str, ModelUsageSummary] = {}
    unpriced: Dict[str, TokenUsage] = {}

    for event in events:
        summary = models.get(event.model)
        if summary is None:
            summary = ModelUsageSummary(usage=TokenUsage.empty(event.usage.convention))
            models[event.model] = summary
        summary.usage = summary.usage + event.usage
        if event.is_fallback_model:
            summary.is_fallback = True

        if event.cost_usd is not None:
            summary.cost_usd += event.cost_usd
        elif event.model in unpriced:
            unpriced[event.model] = unpriced[event.model] + event.usage
        else:
            unpriced[event.model] = event.usage

    for model, usage in unpriced.items():
        try:
            pricing = pricing_table.get_pricing(model)
        except ValueError:
            if model not in warned_models:
                logger.warning("No pricing for model %s; its cost is reported as 0", model)
                warned_models.add(model)
            continue
        models[model].cost_usd += calculate_cost(usage, pricing)

    return models


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _block_to_dict(summary: BlockSummary) -> Dict[str, Any]:
    block = summary.block
    burn_rate = None
    if summary.burn_rate is not None:
        burn_rate = {
            "tokensPerMinute": summary.burn_rate.tokens_per_minute,
            "tokensPerMinuteForIndicator": summary.burn_rate.tokens_per_minute_for_indicator,
            "costPerHour": summary.burn_rate.cost_per_hour,
        }
    projection = None
    if summary.projection is not None:
        projection = {
            "totalTokens": summary.projection.total_tokens,
            "totalCost": summary.projection.total_cost,
            "remainingMinutes": summary.projection.remaining_minutes,
        }

    return {
        "id": block.id,
        "startTime": _iso(block.start_time),
        "endTime": _iso(block.end_time),
        "actualEndTime": _iso(block.actual_end_time),
        "isActive": block.is_active,
        "isGap": block.is_gap,
        "tokenCounts": block.token_counts.to_dict(),
        "costUSD": block.cost_usd,
        "models": {name: model.to_dict() for name, model in summary.models.items()},
        "burnRate": burn_rate,
        "projection": projection,
        "tokenLimitStatus": summary.budget.status.value if summary.budget else None,
        "usagePercent": summary.budget.usage_percent if summary.budget else None,
    }


def report_to_dict(
    report: Optional[BlocksReport],
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Render a report as a JSON-serializable document.

    A None report renders as an empty document with ``totals`` set to null.
    """
    if report is None:
        return {"blocks": [], "totals": None, "metadata": metadata or {}}

    return {
        "blocks": [_block_to_dict(summary) for summary in report.blocks],
        "totals": {
            "tokenCounts": report.totals.token_counts.to_dict(),
            "costUSD": report.totals.cost_usd,
        },
        "metadata": metadata or {},
    }
