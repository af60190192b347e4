"""Gateway backed directly by the async services."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import NotFound
from ..schemas.custom_field import FieldDefinitionRead
from ..schemas.opportunity import OpportunityCreate, OpportunityPage, OpportunityRead, OpportunityUpdate
from ..schemas.pipeline import PipelineDetail, PipelineRead, StageSummary
from ..services import custom_field_svc, opportunity_svc, pipeline_svc
from .gateway import PipelineGateway
from .transitions import TransitionPolicy


class SQLGateway(PipelineGateway):
    """One short-lived session per call, scoped to a single location."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        location_id: uuid.UUID,
        policy: TransitionPolicy | None = None,
    ):
        self._session_factory = session_factory
        self.location_id = location_id
        self.policy = policy

    async def _owned_pipeline(self, db: AsyncSession, pipeline_id: uuid.UUID):
        pipeline = await pipeline_svc.get_pipeline(db, pipeline_id)
        if not pipeline or pipeline.location_id != self.location_id:
            raise NotFound(f"Pipeline {pipeline_id} not found")
        return pipeline

    async def _owned_opportunity(self, db: AsyncSession, opp_id: uuid.UUID):
        opp = await opportunity_svc.get_opportunity(db, opp_id)
        if not opp or opp.location_id != self.location_id:
            raise NotFound(f"Opportunity {opp_id} not found")
        return opp

    async def list_pipelines(self) -> list[PipelineRead]:
        async with self._session_factory() as db:
            pipelines = await pipeline_svc.list_pipelines(db, self.location_id)
            return [PipelineRead.model_validate(p) for p in pipelines]

    async def get_pipeline_with_stages(self, pipeline_id: uuid.UUID) -> PipelineDetail:
        async with self._session_factory() as db:
            return PipelineDetail.model_validate(await self._owned_pipeline(db, pipeline_id))

    async def list_field_definitions(self, pipeline_id: uuid.UUID) -> list[FieldDefinitionRead]:
        async with self._session_factory() as db:
            await self._owned_pipeline(db, pipeline_id)
            return await custom_field_svc.read_definitions(db, pipeline_id, all_stages=True)

    async def list_opportunities_page(
        self, stage_id: uuid.UUID, offset: int, limit: int
    ) -> OpportunityPage:
        async with self._session_factory() as db:
            stage = await pipeline_svc.get_stage(db, stage_id)
            if not stage:
                raise NotFound(f"Stage {stage_id} not found")
            await self._owned_pipeline(db, stage.pipeline_id)
            items, total_count, total_value = await opportunity_svc.list_stage_page(
                db, stage_id, offset, limit
            )
            return OpportunityPage(
                items=[OpportunityRead.model_validate(o) for o in items],
                total_count=total_count,
                total_value=total_value,
                offset=offset,
                limit=limit,
            )

    async def get_opportunity(self, opp_id: uuid.UUID) -> OpportunityRead:
        async with self._session_factory() as db:
            return OpportunityRead.model_validate(await self._owned_opportunity(db, opp_id))

    async def create_opportunity(self, payload: OpportunityCreate) -> OpportunityRead:
        async with self._session_factory() as db:
            opp = await opportunity_svc.create_opportunity(db, self.location_id, payload)
            return OpportunityRead.model_validate(opp)

    async def update_opportunity(
        self, opp_id: uuid.UUID, patch: OpportunityUpdate
    ) -> OpportunityRead:
        async with self._session_factory() as db:
            await self._owned_opportunity(db, opp_id)
            opp = await opportunity_svc.update_opportunity(db, opp_id, patch, policy=self.policy)
            return OpportunityRead.model_validate(opp)

    async def move_opportunity(
        self,
        opp_id: uuid.UUID,
        stage_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> OpportunityRead:
        async with self._session_factory() as db:
            await self._owned_opportunity(db, opp_id)
            opp = await opportunity_svc.move_opportunity(
                db, opp_id, stage_id, expected_version=expected_version, policy=self.policy
            )
            return OpportunityRead.model_validate(opp)

    async def list_stage_summaries(self, pipeline_id: uuid.UUID) -> list[StageSummary]:
        async with self._session_factory() as db:
            await self._owned_pipeline(db, pipeline_id)
            return await pipeline_svc.stage_summaries(db, pipeline_id)
