"""Custom field definition routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import NotFound
from ..models.location import Location
from ..schemas.custom_field import FieldDefinitionCreate, FieldDefinitionRead, FieldDefinitionUpdate
from ..services import custom_field_svc
from ..tenant.deps import get_current_location
from .pipelines import owned_pipeline, owned_stage

router = APIRouter(tags=["custom_fields"])


async def owned_definition(db: AsyncSession, defn_id: uuid.UUID, location: Location):
    defn = await custom_field_svc.get_definition(db, defn_id)
    if defn is None:
        raise NotFound("Field definition not found")
    await owned_pipeline(db, defn.pipeline_id, location)
    return defn


@router.get("/loc/{slug}/pipelines/{pipeline_id}/fields", response_model=list[FieldDefinitionRead])
async def field_list(
    pipeline_id: uuid.UUID,
    stage_id: uuid.UUID | None = None,
    all_stages: bool = False,
    kanban_only: bool = False,
    required_only: bool = False,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_pipeline(db, pipeline_id, location)
    return await custom_field_svc.read_definitions(
        db, pipeline_id,
        stage_id=stage_id, all_stages=all_stages,
        kanban_only=kanban_only, required_only=required_only,
    )


@router.post(
    "/loc/{slug}/pipelines/{pipeline_id}/fields",
    response_model=FieldDefinitionRead,
    status_code=201,
)
async def field_create(
    pipeline_id: uuid.UUID,
    data: FieldDefinitionCreate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    pipeline = await owned_pipeline(db, pipeline_id, location)
    if data.stage_id is not None:
        stage = await owned_stage(db, data.stage_id, location)
        if stage.pipeline_id != pipeline.id:
            raise NotFound("Stage not found")
    defn = await custom_field_svc.create_definition(db, pipeline_id, data)
    return FieldDefinitionRead.from_model(defn)


@router.patch("/loc/{slug}/fields/{defn_id}", response_model=FieldDefinitionRead)
async def field_update(
    defn_id: uuid.UUID,
    data: FieldDefinitionUpdate,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_definition(db, defn_id, location)
    defn = await custom_field_svc.update_definition(db, defn_id, data)
    return FieldDefinitionRead.from_model(defn)


@router.delete("/loc/{slug}/fields/{defn_id}", status_code=204)
async def field_delete(
    defn_id: uuid.UUID,
    location: Location = Depends(get_current_location),
    db: AsyncSession = Depends(get_db),
):
    await owned_definition(db, defn_id, location)
    await custom_field_svc.delete_definition(db, defn_id)
    return Response(status_code=204)
