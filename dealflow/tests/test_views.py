"""Tests for read-only pipeline views."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from dealflow.engine.views import PipelineOverview


@pytest.mark.asyncio
async def test_stage_list_and_totals(gateway, sales_pipeline):
    lead, proposal, won = sales_pipeline.stages[0], sales_pipeline.stages[1], sales_pipeline.stages[2]
    gateway.add(lead.id, "A", 1000.0)
    gateway.add(proposal.id, "B", 400.0)
    gateway.add(won.id, "C", 300.0)

    overview = PipelineOverview(gateway)
    stages = await overview.stages(sales_pipeline.id)
    assert [s.name for s in stages] == ["Lead", "Proposal", "Won", "Lost"]

    totals = await overview.totals(sales_pipeline.id)
    assert totals.total_count == 3
    assert totals.total_value == 1700.0
    assert totals.weighted_value == pytest.approx(100.0 + 200.0 + 300.0)
    assert totals.open_value == 1400.0
    assert totals.won_value == 300.0


@pytest.mark.asyncio
async def test_opportunity_metrics(gateway, sales_pipeline):
    lead = sales_pipeline.stages[0]
    now = datetime(2026, 6, 1, tzinfo=timezone.utc)
    opp = gateway.add(lead.id, "Slow", 500.0, entered_stage_at=now - timedelta(days=10))

    metrics = await PipelineOverview(gateway).opportunity_metrics(opp.id, now)
    assert metrics.whole_days == 10
    assert metrics.is_stagnant
    assert metrics.weighted_value == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_opportunity_metrics_missing(gateway):
    assert await PipelineOverview(gateway).opportunity_metrics(uuid.uuid4()) is None
