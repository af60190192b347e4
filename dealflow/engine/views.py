"""Read-only pipeline views for dashboards and reports."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from ..errors import NotFound
from ..schemas.pipeline import StageSummary
from .gateway import PipelineGateway
from .metrics import OpportunityMetrics, derive_metrics


@dataclass(frozen=True)
class PipelineTotals:
    total_count: int
    total_value: float
    weighted_value: float
    open_value: float
    won_value: float
    stagnant_count: int


class PipelineOverview:
    """Stage lists with totals and per-opportunity derived metrics.

    Exposes no mutation; everything returned is a detached copy.
    """

    def __init__(self, gateway: PipelineGateway):
        self._gateway = gateway

    async def stages(self, pipeline_id: uuid.UUID) -> list[StageSummary]:
        summaries = await self._gateway.list_stage_summaries(pipeline_id)
        return sorted(summaries, key=lambda s: s.position)

    async def totals(self, pipeline_id: uuid.UUID) -> PipelineTotals:
        summaries = await self.stages(pipeline_id)
        return PipelineTotals(
            total_count=sum(s.total_count for s in summaries),
            total_value=sum(s.total_value for s in summaries),
            weighted_value=sum(s.weighted_value for s in summaries),
            open_value=sum(s.total_value for s in summaries if not (s.is_won or s.is_lost)),
            won_value=sum(s.total_value for s in summaries if s.is_won),
            stagnant_count=sum(s.stagnant_count for s in summaries),
        )

    async def opportunity_metrics(
        self, opp_id: uuid.UUID, now: datetime | None = None
    ) -> OpportunityMetrics | None:
        try:
            opp = await self._gateway.get_opportunity(opp_id)
            pipeline = await self._gateway.get_pipeline_with_stages(opp.pipeline_id)
        except NotFound:
            return None
        stage = pipeline.stage(opp.stage_id)
        if stage is None:
            return None
        return derive_metrics(opp, stage, now)
