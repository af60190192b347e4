"""Opportunity routes - stage pages, CRUD, moves and stage history."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..engine.metrics import derive_metrics
from ..models.location import Location
from ..schemas.opportunity import (
    OpportunityCreate,
    OpportunityMove,
    OpportunityPage,
    OpportunityRead,
    OpportunityUpdate,
    StageTransitionRead,
)
from ..services import opportunity_svc, pipeline_svc
from ..tenant.deps import ensure_owned, get_current_location
from .pipelines import owned_stage

router = APIRouter(tags=["opportunities"])


async def owned_opportunity(db: AsyncSession, opp_id: uuid.UUID, location: Location):
    return ensure_owned(await opportunity_svc.get_opportunity(db, opp_id), location, "Opportunity")


@router.get("/loc/{slug}/stages/{stage_id}/opportunities", response_model=OpportunityPage)
async def stage_page(
    stage_id: uuid.UUID,
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1),
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_stage(db, stage_id, location)
    limit = min(limit or settings.board_page_size, settings.board_max_page_size)
    items, total_count, total_value = await opportunity_svc.list_stage_page(db, stage_id, offset, limit)
    return OpportunityPage(
        items=[OpportunityRead.model_validate(o) for o in items],
        total_count=total_count,
        total_value=total_value,
        offset=offset,
        limit=limit,
    )


@router.post("/loc/{slug}/opportunities", response_model=OpportunityRead, status_code=201)
async def opportunity_create(
    data: OpportunityCreate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    return await opportunity_svc.create_opportunity(db, location.id, data)


@router.get("/loc/{slug}/opportunities/{opp_id}", response_model=OpportunityRead)
async def opportunity_detail(
    opp_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    return await owned_opportunity(db, opp_id, location)


@router.patch("/loc/{slug}/opportunities/{opp_id}", response_model=OpportunityRead)
async def opportunity_update(
    opp_id: uuid.UUID,
    data: OpportunityUpdate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_opportunity(db, opp_id, location)
    return await opportunity_svc.update_opportunity(db, opp_id, data)


@router.post("/loc/{slug}/opportunities/{opp_id}/move", response_model=OpportunityRead)
async def opportunity_move(
    opp_id: uuid.UUID,
    data: OpportunityMove,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_opportunity(db, opp_id, location)
    return await opportunity_svc.move_opportunity(
        db, opp_id, data.stage_id, expected_version=data.expected_version
    )


@router.delete("/loc/{slug}/opportunities/{opp_id}", status_code=204)
async def opportunity_delete(
    opp_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_opportunity(db, opp_id, location)
    await opportunity_svc.delete_opportunity(db, opp_id)
    return Response(status_code=204)


@router.get(
    "/loc/{slug}/opportunities/{opp_id}/transitions",
    response_model=list[StageTransitionRead],
)
async def opportunity_transitions(
    opp_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_opportunity(db, opp_id, location)
    return await opportunity_svc.list_transitions(db, opp_id)


@router.get("/loc/{slug}/opportunities/{opp_id}/time-in-stages")
async def opportunity_time_in_stages(
    opp_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_opportunity(db, opp_id, location)
    totals = await opportunity_svc.time_in_stages(db, opp_id)
    return {str(stage_id): days for stage_id, days in totals.items()}


@router.get("/loc/{slug}/opportunities/{opp_id}/metrics")
async def opportunity_metrics(
    opp_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    opp = await owned_opportunity(db, opp_id, location)
    stage = await pipeline_svc.get_stage(db, opp.stage_id)
    metrics = derive_metrics(opp, stage)
    return {
        "days_in_stage": metrics.days_in_stage,
        "is_stagnant": metrics.is_stagnant,
        "weighted_value": metrics.weighted_value,
    }
