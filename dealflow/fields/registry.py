"""Field schema registry - the source of truth for custom-field shapes."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from ..errors import ConfigurationError
from ..schemas.custom_field import FieldDefinitionRead
from .types import DEFAULT_GROUP
from .values import TypedValues

if TYPE_CHECKING:
    from ..engine.gateway import PipelineGateway

logger = logging.getLogger(__name__)


def ensure_unique_names(definitions: Iterable[FieldDefinitionRead]) -> None:
    seen: set[str] = set()
    for definition in definitions:
        if definition.name in seen:
            raise ConfigurationError(f"Duplicate field name {definition.name!r}")
        seen.add(definition.name)


def filter_definitions(
    definitions: Iterable[FieldDefinitionRead],
    *,
    stage_id: uuid.UUID | None = None,
    all_stages: bool = False,
    kanban_only: bool = False,
    required_only: bool = False,
) -> list[FieldDefinitionRead]:
    """Pipeline-wide fields plus those scoped to ``stage_id``."""
    selected = []
    for definition in definitions:
        if not all_stages and definition.stage_id is not None and definition.stage_id != stage_id:
            continue
        if kanban_only and not definition.visible_in_kanban:
            continue
        if required_only and not definition.required:
            continue
        selected.append(definition)
    return sorted(selected, key=lambda d: d.position)


def group_definitions(
    definitions: Iterable[FieldDefinitionRead],
) -> list[tuple[str, list[FieldDefinitionRead]]]:
    """Group by label, "General" first then alphabetical, order kept inside groups."""
    groups: dict[str, list[FieldDefinitionRead]] = {}
    for definition in sorted(definitions, key=lambda d: d.position):
        groups.setdefault(definition.group_label, []).append(definition)

    def sort_key(name: str):
        return (name != DEFAULT_GROUP, name.casefold())

    return [(name, groups[name]) for name in sorted(groups, key=sort_key)]


def requires_migration(old: FieldDefinitionRead, new: FieldDefinitionRead) -> bool:
    return old.name != new.name or old.field_type != new.field_type


class FieldSchemaRegistry:
    """Caches per-pipeline field definitions read through a gateway."""

    def __init__(self, gateway: "PipelineGateway", ttl_seconds: float = 300.0):
        self._gateway = gateway
        self._ttl = ttl_seconds
        self._cache: dict[uuid.UUID, tuple[float, list[FieldDefinitionRead]]] = {}

    async def _load(self, pipeline_id: uuid.UUID) -> list[FieldDefinitionRead]:
        cached = self._cache.get(pipeline_id)
        if cached and time.monotonic() - cached[0] < self._ttl:
            return cached[1]
        definitions = await self._gateway.list_field_definitions(pipeline_id)
        ensure_unique_names(definitions)
        self._cache[pipeline_id] = (time.monotonic(), definitions)
        logger.debug("Loaded %d field definitions for pipeline %s", len(definitions), pipeline_id)
        return definitions

    async def definitions(
        self,
        pipeline_id: uuid.UUID,
        *,
        stage_id: uuid.UUID | None = None,
        all_stages: bool = False,
        kanban_only: bool = False,
        required_only: bool = False,
    ) -> list[FieldDefinitionRead]:
        return filter_definitions(
            await self._load(pipeline_id),
            stage_id=stage_id,
            all_stages=all_stages,
            kanban_only=kanban_only,
            required_only=required_only,
        )

    async def grouped(
        self, pipeline_id: uuid.UUID, stage_id: uuid.UUID | None = None
    ) -> list[tuple[str, list[FieldDefinitionRead]]]:
        return group_definitions(await self.definitions(pipeline_id, stage_id=stage_id))

    async def typed_values(
        self, pipeline_id: uuid.UUID, raw: dict[str, Any] | None
    ) -> TypedValues:
        return TypedValues.from_raw(await self._load(pipeline_id), raw)

    def invalidate(self, pipeline_id: uuid.UUID | None = None) -> None:
        if pipeline_id is None:
            self._cache.clear()
        else:
            self._cache.pop(pipeline_id, None)
