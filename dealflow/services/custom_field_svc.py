"""Pipeline custom field definition service."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConfigurationError
from ..fields.registry import requires_migration
from ..fields.types import FieldType
from ..fields.values import FieldTypeError, coerce_value
from ..models.custom_field import PipelineFieldDefinition
from ..models.opportunity import Opportunity
from ..schemas.custom_field import FieldDefinitionCreate, FieldDefinitionRead, FieldDefinitionUpdate

logger = logging.getLogger(__name__)


async def list_definitions(
    db: AsyncSession,
    pipeline_id: uuid.UUID,
    *,
    stage_id: uuid.UUID | None = None,
    all_stages: bool = False,
    kanban_only: bool = False,
    required_only: bool = False,
) -> list[PipelineFieldDefinition]:
    """Active definitions of a pipeline.

    By default only pipeline-wide fields are returned; pass ``stage_id`` to
    add the fields scoped to that stage, or ``all_stages`` for everything.
    """
    stmt = select(PipelineFieldDefinition).where(
        PipelineFieldDefinition.pipeline_id == pipeline_id,
        PipelineFieldDefinition.is_active.is_(True),
    )
    if not all_stages:
        if stage_id is not None:
            stmt = stmt.where(
                or_(
                    PipelineFieldDefinition.stage_id.is_(None),
                    PipelineFieldDefinition.stage_id == stage_id,
                )
            )
        else:
            stmt = stmt.where(PipelineFieldDefinition.stage_id.is_(None))
    if kanban_only:
        stmt = stmt.where(PipelineFieldDefinition.visible_in_kanban.is_(True))
    if required_only:
        stmt = stmt.where(PipelineFieldDefinition.required.is_(True))
    stmt = stmt.order_by(PipelineFieldDefinition.position)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def read_definitions(
    db: AsyncSession, pipeline_id: uuid.UUID, **filters
) -> list[FieldDefinitionRead]:
    return [FieldDefinitionRead.from_model(d) for d in await list_definitions(db, pipeline_id, **filters)]


async def get_definition(db: AsyncSession, defn_id: uuid.UUID) -> PipelineFieldDefinition | None:
    result = await db.execute(
        select(PipelineFieldDefinition).where(PipelineFieldDefinition.id == defn_id)
    )
    return result.scalar_one_or_none()


async def _name_taken(db: AsyncSession, pipeline_id: uuid.UUID, name: str) -> bool:
    stmt = select(PipelineFieldDefinition.id).where(
        PipelineFieldDefinition.pipeline_id == pipeline_id,
        PipelineFieldDefinition.name == name,
    )
    return (await db.execute(stmt)).first() is not None


async def create_definition(
    db: AsyncSession, pipeline_id: uuid.UUID, data: FieldDefinitionCreate
) -> PipelineFieldDefinition:
    if await _name_taken(db, pipeline_id, data.name):
        raise ConfigurationError(f"Field {data.name!r} already exists in this pipeline")

    position = data.position
    if position is None:
        stmt = select(func.max(PipelineFieldDefinition.position)).where(
            PipelineFieldDefinition.pipeline_id == pipeline_id
        )
        max_pos = (await db.execute(stmt)).scalar()
        position = (max_pos + 1) if max_pos is not None else 0

    defn = PipelineFieldDefinition(
        pipeline_id=pipeline_id,
        stage_id=data.stage_id,
        name=data.name,
        label=data.label,
        field_type=data.field_type.value,
        required=data.required,
        options_json=[opt.model_dump() for opt in data.options] or None,
        validation_json=data.validation.model_dump() if data.validation else None,
        placeholder=data.placeholder,
        description=data.description,
        group_name=data.group,
        width=data.width,
        position=position,
        visible_in_kanban=data.visible_in_kanban,
    )
    db.add(defn)
    await db.commit()
    await db.refresh(defn)
    return defn


async def update_definition(
    db: AsyncSession, defn_id: uuid.UUID, data: FieldDefinitionUpdate
) -> PipelineFieldDefinition | None:
    defn = await get_definition(db, defn_id)
    if not defn:
        return None

    changes = data.model_dump(exclude_unset=True, exclude={"migrate"})
    current = FieldDefinitionRead.from_model(defn)
    proposed = current.model_copy(update={
        "name": changes.get("name") or current.name,
        "field_type": FieldType(changes.get("field_type") or current.field_type),
    })
    new_name, new_type = proposed.name, proposed.field_type
    renamed = new_name != current.name

    if requires_migration(current, proposed):
        if not data.migrate:
            raise ConfigurationError(
                f"Changing the name or type of {defn.name!r} rewrites stored values; "
                "resubmit with migrate=true"
            )
        if renamed and await _name_taken(db, defn.pipeline_id, new_name):
            raise ConfigurationError(f"Field {new_name!r} already exists in this pipeline")
        await migrate_field_values(
            db, defn.pipeline_id, defn.name, new_name=new_name, new_type=new_type
        )

    column_map = {"group": "group_name"}
    for key, value in changes.items():
        if key == "options":
            defn.options_json = [opt.model_dump() for opt in data.options or []] or None
        elif key == "validation":
            defn.validation_json = data.validation.model_dump() if data.validation else None
        elif key == "field_type":
            defn.field_type = FieldType(value).value
        else:
            setattr(defn, column_map.get(key, key), value)

    await db.commit()
    await db.refresh(defn)
    return defn


async def delete_definition(db: AsyncSession, defn_id: uuid.UUID) -> bool:
    defn = await get_definition(db, defn_id)
    if not defn:
        return False
    await db.delete(defn)
    await db.commit()
    return True


async def migrate_field_values(
    db: AsyncSession,
    pipeline_id: uuid.UUID,
    old_name: str,
    *,
    new_name: str | None = None,
    new_type: FieldType | None = None,
) -> int:
    """Rewrite ``old_name`` entries of every opportunity in the pipeline.

    Values move to ``new_name`` and are re-coerced to ``new_type``. A value
    that cannot be represented in the new type is dropped and logged.
    Does not commit; the caller owns the transaction.
    """
    new_name = new_name or old_name
    result = await db.execute(select(Opportunity).where(Opportunity.pipeline_id == pipeline_id))
    rewritten = 0
    for opp in result.scalars().all():
        values = dict(opp.custom_fields or {})
        if old_name not in values:
            continue
        raw = values.pop(old_name)
        if new_type is not None:
            try:
                typed = coerce_value(new_type, raw)
            except FieldTypeError:
                logger.warning(
                    "Dropping %s=%r on opportunity %s: not representable as %s",
                    old_name, raw, opp.id, new_type.value,
                )
                typed = None
            if typed is not None:
                values[new_name] = typed.to_json()
        else:
            values[new_name] = raw
        # Whole-map replace so the JSON column is flagged dirty
        opp.custom_fields = values
        rewritten += 1
    logger.info(
        "Migrated field %s -> %s on %d opportunities of pipeline %s",
        old_name, new_name, rewritten, pipeline_id,
    )
    return rewritten
