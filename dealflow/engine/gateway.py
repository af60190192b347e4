"""Persistence boundary consumed by the board and form controllers."""

from __future__ import annotations

import abc
import uuid

from ..schemas.custom_field import FieldDefinitionRead
from ..schemas.opportunity import OpportunityCreate, OpportunityPage, OpportunityRead, OpportunityUpdate
from ..schemas.pipeline import PipelineDetail, PipelineRead, StageSummary


class PipelineGateway(abc.ABC):
    """Abstract CRUD + move API.

    Implementations raise the ``dealflow.errors`` taxonomy: NotFound for
    missing entities, ValidationError for rejected payloads, MoveConflict for
    refused moves and TransportError for anything that failed in transit.
    """

    @abc.abstractmethod
    async def list_pipelines(self) -> list[PipelineRead]: ...

    @abc.abstractmethod
    async def get_pipeline_with_stages(self, pipeline_id: uuid.UUID) -> PipelineDetail:
        """Pipeline with stages ordered by position."""

    @abc.abstractmethod
    async def list_field_definitions(self, pipeline_id: uuid.UUID) -> list[FieldDefinitionRead]:
        """Every active definition of the pipeline, stage-scoped ones included."""

    @abc.abstractmethod
    async def list_opportunities_page(
        self, stage_id: uuid.UUID, offset: int, limit: int
    ) -> OpportunityPage: ...

    @abc.abstractmethod
    async def get_opportunity(self, opp_id: uuid.UUID) -> OpportunityRead: ...

    @abc.abstractmethod
    async def create_opportunity(self, payload: OpportunityCreate) -> OpportunityRead: ...

    @abc.abstractmethod
    async def update_opportunity(
        self, opp_id: uuid.UUID, patch: OpportunityUpdate
    ) -> OpportunityRead: ...

    @abc.abstractmethod
    async def move_opportunity(
        self,
        opp_id: uuid.UUID,
        stage_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> OpportunityRead:
        """Return the authoritative post-move entity."""

    @abc.abstractmethod
    async def list_stage_summaries(self, pipeline_id: uuid.UUID) -> list[StageSummary]: ...
