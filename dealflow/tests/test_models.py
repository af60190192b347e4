"""Test model creation and constraints."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dealflow.models import (
    Location,
    Opportunity,
    Pipeline,
    PipelineFieldDefinition,
    PipelineStage,
    StageTransition,
)


@pytest.mark.asyncio
async def test_create_location(db: AsyncSession):
    loc = Location(name="Acme Corp", slug="acme-corp")
    db.add(loc)
    await db.commit()
    result = await db.execute(select(Location).where(Location.slug == "acme-corp"))
    fetched = result.scalar_one()
    assert fetched.name == "Acme Corp"
    assert fetched.timezone == "UTC"


@pytest.mark.asyncio
async def test_create_pipeline_with_stages(db: AsyncSession, location: Location):
    pipeline = Pipeline(location_id=location.id, name="Sales")
    db.add(pipeline)
    await db.flush()

    s1 = PipelineStage(pipeline_id=pipeline.id, name="Lead", position=0)
    s2 = PipelineStage(pipeline_id=pipeline.id, name="Won", position=1, is_won=True)
    db.add_all([s1, s2])
    await db.commit()

    result = await db.execute(
        select(PipelineStage).where(PipelineStage.pipeline_id == pipeline.id)
    )
    stages = list(result.scalars().all())
    assert len(stages) == 2
    assert not s1.is_terminal
    assert s2.is_terminal


@pytest.mark.asyncio
async def test_stage_positions_unique_per_pipeline(db: AsyncSession, location: Location):
    pipeline = Pipeline(location_id=location.id, name="Dupes")
    db.add(pipeline)
    await db.flush()

    db.add_all([
        PipelineStage(pipeline_id=pipeline.id, name="A", position=0),
        PipelineStage(pipeline_id=pipeline.id, name="B", position=0),
    ])
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


@pytest.mark.asyncio
async def test_field_names_unique_per_pipeline(db: AsyncSession, location: Location):
    pipeline = Pipeline(location_id=location.id, name="Fields")
    db.add(pipeline)
    await db.flush()

    db.add_all([
        PipelineFieldDefinition(pipeline_id=pipeline.id, name="due", label="Due", field_type="date"),
        PipelineFieldDefinition(pipeline_id=pipeline.id, name="due", label="Due 2", field_type="text"),
    ])
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


@pytest.mark.asyncio
async def test_create_opportunity_with_transition(db: AsyncSession, location: Location):
    pipeline = Pipeline(location_id=location.id, name="Deals")
    db.add(pipeline)
    await db.flush()

    stage = PipelineStage(pipeline_id=pipeline.id, name="New", position=0)
    db.add(stage)
    await db.flush()

    now = datetime.now(timezone.utc)
    opp = Opportunity(
        location_id=location.id,
        name="Big Deal",
        pipeline_id=pipeline.id,
        stage_id=stage.id,
        monetary_value=10000.0,
        entered_stage_at=now,
    )
    opp.transitions.append(
        StageTransition(location_id=location.id, to_stage_id=stage.id, transitioned_at=now)
    )
    db.add(opp)
    await db.commit()

    assert opp.status == "open"
    assert opp.version == 1
    assert opp.custom_fields == {}

    result = await db.execute(
        select(StageTransition).where(StageTransition.opportunity_id == opp.id)
    )
    transition = result.scalar_one()
    assert transition.from_stage_id is None
    assert transition.to_stage_id == stage.id
