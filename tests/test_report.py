"""
Unit tests for blocks report assembly and JSON rendering.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ai_usage_blocks.core.blocks import identify_session_blocks
from ai_usage_blocks.core.budget import BudgetStatus
from ai_usage_blocks.core.pricing import ModelPricing, PricingTable
from ai_usage_blocks.core.report import build_blocks_report, report_to_dict, summarize_models
from ai_usage_blocks.core.token_counter import BillingConvention, TokenUsage
from ai_usage_blocks.sources.models import UsageEvent

BASE = datetime(2025, 4, 2, 12, 0, tzinfo=timezone.utc)
FIVE_HOURS = timedelta(hours=5)

TABLE = PricingTable({
    "gpt-5": ModelPricing(
        input_per_million=Decimal("1"),
        cached_input_per_million=Decimal("0.5"),
        output_per_million=Decimal("10"),
    ),
})


def _event(offset_minutes: float, model: str = "gpt-5", input_tokens: int = 1000,
           output_tokens: int = 100, fallback: bool = False, cost=None) -> UsageEvent:
    return UsageEvent(
        timestamp=BASE + timedelta(minutes=offset_minutes),
        stream_key="session",
        model=model,
        usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens,
                         convention=BillingConvention.OPENAI),
        cost_usd=cost,
        is_fallback_model=fallback,
    )


class TestBuildBlocksReport:
    """Test report assembly."""

    def test_blocks_priced_per_model(self):
        """Block cost is replaced by the priced total."""
        events = [_event(0), _event(30)]
        blocks = identify_session_blocks(events, FIVE_HOURS, now=BASE + timedelta(days=1))
        report = build_blocks_report(blocks, TABLE, now=BASE + timedelta(days=1))

        summary = report.blocks[0]
        # 2000 input at $1/M + 200 output at $10/M
        assert summary.models["gpt-5"].cost_usd == pytest.approx(0.004)
        assert summary.block.cost_usd == pytest.approx(0.004)
        assert report.totals.cost_usd == pytest.approx(0.004)
        assert report.totals.token_counts.total_tokens == 2200

    def test_unknown_model_costs_zero_and_warns(self, caplog):
        """Unpriced models are reported with zero cost."""
        events = [_event(0, model="mystery"), _event(5, model="mystery")]
        blocks = identify_session_blocks(events, FIVE_HOURS, now=BASE + timedelta(days=1))

        with caplog.at_level(logging.WARNING, logger="ai_usage_blocks.core.report"):
            report = build_blocks_report(blocks, TABLE, now=BASE + timedelta(days=1))

        assert report.blocks[0].models["mystery"].cost_usd == 0.0
        assert report.blocks[0].models["mystery"].usage.total_tokens == 2200
        assert sum("mystery" in record.getMessage() for record in caplog.records) == 1

    def test_precomputed_cost_kept(self):
        """Events that carry a cost are not re-priced."""
        events = [_event(0, cost=1.5), _event(5)]
        summaries = summarize_models(events, TABLE)
        assert summaries["gpt-5"].cost_usd == pytest.approx(1.5 + 0.002)

    def test_fallback_flag_propagates(self):
        """A model summary is flagged when any of its events used the fallback."""
        summaries = summarize_models([_event(0), _event(1, fallback=True)], TABLE)
        assert summaries["gpt-5"].is_fallback

    def test_active_block_gets_rate_projection_and_status(self):
        """Active blocks carry burn rate, projection and budget status."""
        now = BASE + timedelta(hours=1)
        blocks = identify_session_blocks([_event(0), _event(30)], FIVE_HOURS, now=now)
        report = build_blocks_report(blocks, TABLE, now=now, token_limit=10000)

        summary = report.blocks[0]
        assert summary.burn_rate is not None
        assert summary.projection is not None
        # 2200 tokens over 30 min, 240 min left: 2200 + 73.33 * 240
        assert summary.projection.total_tokens == 19800
        assert summary.budget.status == BudgetStatus.EXCEEDS
        assert summary.budget.usage_percent == pytest.approx(0.22)

    def test_gap_blocks_have_no_metrics(self):
        """Gaps are carried through with zero cost and no metrics."""
        now = BASE + timedelta(days=1)
        blocks = identify_session_blocks([_event(0), _event(600)], FIVE_HOURS, now=now)
        report = build_blocks_report(blocks, TABLE, now=now, token_limit=1000)

        gap = report.blocks[1]
        assert gap.block.is_gap
        assert gap.models == {}
        assert gap.burn_rate is None
        assert gap.projection is None
        assert gap.block.cost_usd == 0.0

    def test_empty_report(self):
        """No blocks, zero totals."""
        report = build_blocks_report([], TABLE, now=BASE)
        assert report.blocks == []
        assert report.totals.cost_usd == 0
        assert report.totals.token_counts.is_empty


class TestReportToDict:
    """Test JSON document rendering."""

    def test_document_shape(self):
        """Blocks, totals and metadata use camelCase keys."""
        now = BASE + timedelta(hours=1)
        blocks = identify_session_blocks([_event(0), _event(30), _event(400)], FIVE_HOURS, now=now)
        report = build_blocks_report(blocks, TABLE, now=now, token_limit=5000)
        document = report_to_dict(report, {"order": "asc"})

        json.dumps(document)
        assert document["metadata"] == {"order": "asc"}
        first = document["blocks"][0]
        assert first["id"] == BASE.isoformat()
        assert first["startTime"] == BASE.isoformat()
        assert first["isGap"] is False
        assert first["tokenCounts"]["totalTokens"] == 2200
        assert first["models"]["gpt-5"]["isFallback"] is False
        assert first["tokenLimitStatus"] in {"ok", "warning", "exceeds"}
        assert first["usagePercent"] == pytest.approx(0.44)
        assert document["blocks"][1]["isGap"] is True
        assert document["blocks"][1]["actualEndTime"] is None
        assert document["totals"]["tokenCounts"]["totalTokens"] == 3300

    def test_empty_document(self):
        """A missing report renders with null totals."""
        document = report_to_dict(None, {"missingDirectories": ["/nope"]})
        assert document == {"blocks": [], "totals": None, "metadata": {"missingDirectories": ["/nope"]}}
