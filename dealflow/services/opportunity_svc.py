"""Opportunity service - CRUD, stage moves and stage history."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..engine.metrics import days_in_stage, utcnow, weighted_value
from ..engine.transitions import TransitionPolicy, check_transition
from ..errors import FieldError, MoveConflict, NotFound, ValidationError, ValidationKind
from ..fields.validator import validate_all_fields
from ..fields.values import TypedValues
from ..models.opportunity import Opportunity
from ..models.pipeline import Pipeline, PipelineStage
from ..models.stage_transition import StageTransition
from ..schemas.opportunity import OpportunityCreate, OpportunityUpdate
from . import custom_field_svc

logger = logging.getLogger(__name__)


def default_policy() -> TransitionPolicy:
    return TransitionPolicy.from_config(settings.stage_transitions)


def _status_for(stage: PipelineStage) -> str:
    if stage.is_won:
        return "won"
    if stage.is_lost:
        return "lost"
    return "open"


async def _get_stage(db: AsyncSession, stage_id: uuid.UUID) -> PipelineStage | None:
    result = await db.execute(select(PipelineStage).where(PipelineStage.id == stage_id))
    return result.scalar_one_or_none()


async def _validated_custom_fields(
    db: AsyncSession,
    pipeline_id: uuid.UUID,
    stage_id: uuid.UUID,
    raw: dict | None,
) -> dict:
    """Validate against the pipeline's fields for ``stage_id`` and normalize.

    Keys without a definition (variant subform values, fields scoped to
    other stages) are carried through untouched.
    """
    definitions = await custom_field_svc.read_definitions(db, pipeline_id, stage_id=stage_id)
    result = validate_all_fields(definitions, raw)
    if not result.valid:
        raise ValidationError(result.errors)
    return TypedValues.from_raw(definitions, raw).to_json()


# ── Reads ──────────────────────────────────────────────────────────────────

async def get_opportunity(db: AsyncSession, opp_id: uuid.UUID) -> Opportunity | None:
    stmt = (
        select(Opportunity)
        .where(Opportunity.id == opp_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_stage_page(
    db: AsyncSession, stage_id: uuid.UUID, offset: int = 0, limit: int = 20
) -> tuple[list[Opportunity], int, float]:
    """One page of a stage's opportunities plus the whole stage's count and value."""
    totals = await db.execute(
        select(
            func.count(Opportunity.id),
            func.coalesce(func.sum(Opportunity.monetary_value), 0.0),
        ).where(Opportunity.stage_id == stage_id)
    )
    total_count, total_value = totals.one()

    stmt = (
        select(Opportunity)
        .where(Opportunity.stage_id == stage_id)
        .order_by(Opportunity.created_at.desc(), Opportunity.id)
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total_count), float(total_value or 0)


# ── Writes ─────────────────────────────────────────────────────────────────

async def create_opportunity(
    db: AsyncSession,
    location_id: uuid.UUID,
    data: OpportunityCreate,
    now: datetime | None = None,
) -> Opportunity:
    now = now or utcnow()
    pipeline = await db.get(Pipeline, data.pipeline_id)
    if pipeline is None or pipeline.location_id != location_id:
        raise NotFound(f"Pipeline {data.pipeline_id} not found")

    stage = await _get_stage(db, data.stage_id)
    if stage is None or stage.pipeline_id != pipeline.id:
        raise ValidationError({
            "stage_id": FieldError(
                ValidationKind.INVALID_OPTION_MEMBERSHIP,
                "Stage does not belong to the selected pipeline",
            )
        })

    custom_fields = await _validated_custom_fields(db, pipeline.id, stage.id, data.custom_fields)
    opp = Opportunity(
        location_id=location_id,
        pipeline_id=pipeline.id,
        stage_id=stage.id,
        name=data.name,
        monetary_value=data.monetary_value,
        weighted_value=weighted_value(data.monetary_value, stage.probability_percent),
        expected_close_date=data.expected_close_date,
        notes=data.notes,
        custom_fields=custom_fields,
        status=_status_for(stage),
        closed_at=now if stage.is_terminal else None,
        entered_stage_at=now,
        version=1,
    )
    opp.transitions.append(
        StageTransition(location_id=location_id, to_stage_id=stage.id, transitioned_at=now)
    )
    db.add(opp)
    await db.commit()
    return await get_opportunity(db, opp.id)


async def _apply_stage_change(
    db: AsyncSession,
    opp: Opportunity,
    target: PipelineStage,
    policy: TransitionPolicy | None,
    now: datetime,
) -> None:
    current = await _get_stage(db, opp.stage_id)
    check_transition(policy or default_policy(), current, target)

    db.add(
        StageTransition(
            location_id=opp.location_id,
            opportunity_id=opp.id,
            from_stage_id=current.id,
            to_stage_id=target.id,
            transitioned_at=now,
            days_in_previous_stage=days_in_stage(opp.entered_stage_at, now),
        )
    )
    opp.stage_id = target.id
    opp.entered_stage_at = now
    opp.weighted_value = weighted_value(opp.monetary_value, target.probability_percent)
    opp.status = _status_for(target)
    opp.closed_at = now if target.is_terminal else None


async def move_opportunity(
    db: AsyncSession,
    opp_id: uuid.UUID,
    stage_id: uuid.UUID,
    expected_version: int | None = None,
    policy: TransitionPolicy | None = None,
    now: datetime | None = None,
) -> Opportunity | None:
    """Move an opportunity to another stage of its pipeline.

    Returns the authoritative post-move row, or None if the opportunity is
    gone. Moving to the current stage changes nothing.
    """
    opp = await get_opportunity(db, opp_id)
    if not opp:
        return None
    if expected_version is not None and expected_version != opp.version:
        raise MoveConflict(
            f"Opportunity {opp_id} is at version {opp.version}, expected {expected_version}"
        )

    target = await _get_stage(db, stage_id)
    if target is None:
        raise NotFound(f"Stage {stage_id} not found")
    if target.id == opp.stage_id:
        return opp

    from_stage_id = opp.stage_id
    await _apply_stage_change(db, opp, target, policy, now or utcnow())
    opp.version += 1
    await db.commit()
    logger.info("Moved opportunity %s from stage %s to %s", opp_id, from_stage_id, stage_id)
    return await get_opportunity(db, opp_id)


async def update_opportunity(
    db: AsyncSession,
    opp_id: uuid.UUID,
    data: OpportunityUpdate,
    policy: TransitionPolicy | None = None,
    now: datetime | None = None,
) -> Opportunity | None:
    """Apply a patch. ``custom_fields``, when given, replaces the whole map."""
    opp = await get_opportunity(db, opp_id)
    if not opp:
        return None

    changes = data.model_dump(exclude_unset=True)
    stage_id = changes.pop("stage_id", None)
    if stage_id is not None and stage_id != opp.stage_id:
        target = await _get_stage(db, stage_id)
        if target is None:
            raise NotFound(f"Stage {stage_id} not found")
        await _apply_stage_change(db, opp, target, policy, now or utcnow())

    if "custom_fields" in changes:
        opp.custom_fields = await _validated_custom_fields(
            db, opp.pipeline_id, opp.stage_id, changes.pop("custom_fields") or {}
        )

    for key, value in changes.items():
        setattr(opp, key, value)

    stage = await _get_stage(db, opp.stage_id)
    opp.weighted_value = weighted_value(opp.monetary_value, stage.probability_percent)
    opp.version += 1
    await db.commit()
    return await get_opportunity(db, opp_id)


async def delete_opportunity(db: AsyncSession, opp_id: uuid.UUID) -> bool:
    stmt = select(Opportunity).where(Opportunity.id == opp_id)
    result = await db.execute(stmt)
    opp = result.scalar_one_or_none()
    if not opp:
        return False
    await db.delete(opp)
    await db.commit()
    return True


# ── History ────────────────────────────────────────────────────────────────

async def list_transitions(db: AsyncSession, opp_id: uuid.UUID) -> list[StageTransition]:
    stmt = (
        select(StageTransition)
        .where(StageTransition.opportunity_id == opp_id)
        .order_by(StageTransition.transitioned_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def time_in_stages(
    db: AsyncSession, opp_id: uuid.UUID, now: datetime | None = None
) -> dict[uuid.UUID, float] | None:
    """Days spent in each stage over the whole lifecycle, current stage included."""
    opp = await get_opportunity(db, opp_id)
    if not opp:
        return None
    totals: dict[uuid.UUID, float] = defaultdict(float)
    for transition in await list_transitions(db, opp_id):
        if transition.from_stage_id is not None and transition.days_in_previous_stage:
            totals[transition.from_stage_id] += transition.days_in_previous_stage
    totals[opp.stage_id] += days_in_stage(opp.entered_stage_at, now)
    return dict(totals)
