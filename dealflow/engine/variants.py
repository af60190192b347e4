"""Pipeline-variant subforms.

A variant adds a fixed block of fields to the opportunity form of the
pipelines it matches. Its values are merged into the same custom-field map
as the pipeline's own definitions; on the server they are kept as-is.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from ..config import settings
from ..fields.types import FieldType
from ..schemas.custom_field import FieldDefinitionRead, FieldOption
from ..schemas.pipeline import PipelineRead


@dataclass(frozen=True)
class SubformVariant:
    key: str
    section: str
    matches: Callable[[PipelineRead], bool]
    definitions: tuple[FieldDefinitionRead, ...] = ()

    def with_options(
        self, lookups: Mapping[str, list[FieldOption]] | None
    ) -> list[FieldDefinitionRead]:
        """Definitions with select options filled from lookup tables.

        Selects left without options accept any value.
        """
        lookups = lookups or {}
        return [
            d.model_copy(update={"options": list(lookups[d.name])}) if d.name in lookups else d
            for d in self.definitions
        ]


def _named(name: str) -> Callable[[PipelineRead], bool]:
    target = name.strip().casefold()
    return lambda pipeline: pipeline.name.strip().casefold() == target


ORDER_SECTION = "order"

ORDER_FIELDS = (
    FieldDefinitionRead(
        name="order_type_id", label="Order type", field_type=FieldType.SELECT,
        required=True, width="half", position=0,
    ),
    FieldDefinitionRead(
        name="payment_terms_id", label="Payment terms", field_type=FieldType.SELECT,
        required=True, width="half", position=1,
    ),
    FieldDefinitionRead(
        name="scheduled_billing_date", label="Scheduled billing date",
        field_type=FieldType.DATE, width="half", position=2,
    ),
    FieldDefinitionRead(
        name="freight_type_id", label="Freight type", field_type=FieldType.SELECT,
        width="half", position=3,
    ),
    FieldDefinitionRead(
        name="partial_billing", label="Partial billing allowed",
        field_type=FieldType.BOOLEAN, position=4,
    ),
)


@dataclass
class VariantRegistry:
    variants: list[SubformVariant] = field(default_factory=list)

    def register(self, variant: SubformVariant) -> None:
        self.variants = [v for v in self.variants if v.key != variant.key] + [variant]

    def for_pipeline(self, pipeline: PipelineRead) -> SubformVariant | None:
        for variant in self.variants:
            if variant.matches(pipeline):
                return variant
        return None


def order_variant(pipeline_name: str | None = None) -> SubformVariant:
    return SubformVariant(
        key="order",
        section=ORDER_SECTION,
        matches=_named(pipeline_name or settings.order_variant_pipeline_name),
        definitions=ORDER_FIELDS,
    )


def default_registry() -> VariantRegistry:
    registry = VariantRegistry()
    registry.register(order_variant())
    return registry
