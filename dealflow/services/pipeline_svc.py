"""Pipeline and stage service."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..engine.metrics import utcnow
from ..errors import ConfigurationError
from ..models.opportunity import Opportunity
from ..models.pipeline import Pipeline, PipelineStage
from ..schemas.pipeline import StageCreate, StageSummary


# ── Pipeline CRUD ──────────────────────────────────────────────────────────

async def list_pipelines(
    db: AsyncSession, location_id: uuid.UUID, active_only: bool = False
) -> list[Pipeline]:
    stmt = (
        select(Pipeline)
        .where(Pipeline.location_id == location_id)
        .options(selectinload(Pipeline.stages))
        .order_by(Pipeline.position, Pipeline.name)
    )
    if active_only:
        stmt = stmt.where(Pipeline.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


async def get_pipeline(db: AsyncSession, pipeline_id: uuid.UUID) -> Pipeline | None:
    stmt = (
        select(Pipeline)
        .where(Pipeline.id == pipeline_id)
        .options(selectinload(Pipeline.stages))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def _check_unique_positions(stages: list[StageCreate]) -> list[int]:
    positions = [s.position if s.position is not None else i for i, s in enumerate(stages)]
    if len(set(positions)) != len(positions):
        raise ConfigurationError("Stage positions must be unique within a pipeline")
    return positions


async def create_pipeline(
    db: AsyncSession,
    location_id: uuid.UUID,
    name: str,
    description: str | None = None,
    color: str | None = None,
    stages: list[StageCreate] | None = None,
) -> Pipeline:
    stages = stages or []
    positions = _check_unique_positions(stages)
    pipeline = Pipeline(location_id=location_id, name=name, description=description, color=color)
    for position, spec in sorted(zip(positions, stages), key=lambda pair: pair[0]):
        pipeline.stages.append(
            PipelineStage(**spec.model_dump(exclude={"position"}), position=position)
        )
    db.add(pipeline)
    await db.commit()
    return await get_pipeline(db, pipeline.id)


async def delete_pipeline(db: AsyncSession, pipeline_id: uuid.UUID) -> bool:
    stmt = select(Pipeline).where(Pipeline.id == pipeline_id)
    result = await db.execute(stmt)
    pipeline = result.scalar_one_or_none()
    if not pipeline:
        return False
    await db.delete(pipeline)
    await db.commit()
    return True


# ── Stage CRUD ─────────────────────────────────────────────────────────────

async def get_stage(db: AsyncSession, stage_id: uuid.UUID) -> PipelineStage | None:
    result = await db.execute(select(PipelineStage).where(PipelineStage.id == stage_id))
    return result.scalar_one_or_none()


async def add_stage(
    db: AsyncSession, pipeline_id: uuid.UUID, name: str, position: int | None = None, **attrs
) -> PipelineStage:
    if position is None:
        # Auto-assign next position
        stmt = select(func.max(PipelineStage.position)).where(
            PipelineStage.pipeline_id == pipeline_id
        )
        result = await db.execute(stmt)
        max_pos = result.scalar()
        position = (max_pos + 1) if max_pos is not None else 0
    else:
        stmt = select(PipelineStage.id).where(
            PipelineStage.pipeline_id == pipeline_id, PipelineStage.position == position
        )
        if (await db.execute(stmt)).first() is not None:
            raise ConfigurationError(f"Position {position} is already taken in this pipeline")

    stage = PipelineStage(pipeline_id=pipeline_id, name=name, position=position, **attrs)
    db.add(stage)
    await db.commit()
    await db.refresh(stage)
    return stage


async def delete_stage(db: AsyncSession, stage_id: uuid.UUID) -> bool:
    stage = await get_stage(db, stage_id)
    if not stage:
        return False
    count = (
        await db.execute(select(func.count(Opportunity.id)).where(Opportunity.stage_id == stage_id))
    ).scalar_one()
    if count:
        raise ConfigurationError(
            f"Stage {stage.name!r} still owns {count} opportunities; move them first"
        )
    await db.delete(stage)
    await db.commit()
    return True


# ── Aggregates ─────────────────────────────────────────────────────────────

async def stage_summaries(
    db: AsyncSession, pipeline_id: uuid.UUID, now: datetime | None = None
) -> list[StageSummary]:
    """Per-stage totals over every opportunity, not just a loaded page."""
    now = now or utcnow()
    stmt = (
        select(
            PipelineStage,
            func.count(Opportunity.id),
            func.coalesce(func.sum(Opportunity.monetary_value), 0.0),
            func.coalesce(func.sum(Opportunity.weighted_value), 0.0),
        )
        .outerjoin(Opportunity, Opportunity.stage_id == PipelineStage.id)
        .where(PipelineStage.pipeline_id == pipeline_id)
        .group_by(PipelineStage.id)
        .order_by(PipelineStage.position)
    )
    rows = (await db.execute(stmt)).all()

    summaries = []
    for stage, count, total_value, total_weighted in rows:
        stagnant = 0
        if stage.stagnation_alert_days is not None and count:
            cutoff = now - timedelta(days=stage.stagnation_alert_days)
            stagnant = (
                await db.execute(
                    select(func.count(Opportunity.id)).where(
                        Opportunity.stage_id == stage.id,
                        Opportunity.entered_stage_at < cutoff,
                    )
                )
            ).scalar_one()
        summaries.append(
            StageSummary(
                stage_id=stage.id,
                name=stage.name,
                position=stage.position,
                probability_percent=stage.probability_percent,
                is_won=stage.is_won,
                is_lost=stage.is_lost,
                total_count=count,
                total_value=float(total_value or 0),
                weighted_value=float(total_weighted or 0),
                stagnant_count=stagnant,
            )
        )
    return summaries
