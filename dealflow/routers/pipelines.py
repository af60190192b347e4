"""Pipeline routes - pipelines, stages and per-stage summaries."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import NotFound
from ..models.location import Location
from ..schemas.pipeline import PipelineCreate, PipelineDetail, PipelineRead, StageCreate, StageRead, StageSummary
from ..services import pipeline_svc
from ..tenant.deps import ensure_owned, get_current_location

router = APIRouter(tags=["pipelines"])


async def owned_pipeline(db: AsyncSession, pipeline_id: uuid.UUID, location: Location):
    return ensure_owned(await pipeline_svc.get_pipeline(db, pipeline_id), location, "Pipeline")


async def owned_stage(db: AsyncSession, stage_id: uuid.UUID, location: Location):
    stage = await pipeline_svc.get_stage(db, stage_id)
    if stage is None:
        raise NotFound("Stage not found")
    await owned_pipeline(db, stage.pipeline_id, location)
    return stage


@router.get("/loc/{slug}/pipelines", response_model=list[PipelineRead])
async def pipeline_list(
    active_only: bool = False,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    return await pipeline_svc.list_pipelines(db, location.id, active_only=active_only)


@router.post("/loc/{slug}/pipelines", response_model=PipelineDetail, status_code=201)
async def pipeline_create(
    data: PipelineCreate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    return await pipeline_svc.create_pipeline(
        db, location.id, data.name,
        description=data.description, color=data.color, stages=data.stages,
    )


@router.get("/loc/{slug}/pipelines/{pipeline_id}", response_model=PipelineDetail)
async def pipeline_detail(
    pipeline_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    return await owned_pipeline(db, pipeline_id, location)


@router.delete("/loc/{slug}/pipelines/{pipeline_id}", status_code=204)
async def pipeline_delete(
    pipeline_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_pipeline(db, pipeline_id, location)
    await pipeline_svc.delete_pipeline(db, pipeline_id)
    return Response(status_code=204)


@router.post("/loc/{slug}/pipelines/{pipeline_id}/stages", response_model=StageRead, status_code=201)
async def stage_add(
    pipeline_id: uuid.UUID,
    data: StageCreate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_pipeline(db, pipeline_id, location)
    return await pipeline_svc.add_stage(
        db, pipeline_id, data.name, position=data.position,
        **data.model_dump(exclude={"name", "position"}),
    )


@router.delete("/loc/{slug}/stages/{stage_id}", status_code=204)
async def stage_delete(
    stage_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_stage(db, stage_id, location)
    await pipeline_svc.delete_stage(db, stage_id)
    return Response(status_code=204)


@router.get("/loc/{slug}/pipelines/{pipeline_id}/summary", response_model=list[StageSummary])
async def pipeline_summary(
    pipeline_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_pipeline(db, pipeline_id, location)
    return await pipeline_svc.stage_summaries(db, pipeline_id)
