"""Opportunity form controller.

Combines the fixed opportunity fields, the pipeline's custom fields and an
optional variant subform into one validated create or update call.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..config import settings
from ..errors import DealflowError, FieldError, SubmissionError, ValidationError, ValidationKind
from ..fields.registry import FieldSchemaRegistry, filter_definitions, group_definitions
from ..fields.renderer import FieldWidget, MultiSelectRenderer, render_fields, renderer_for
from ..fields.validator import ValidationResult, validate_all_fields
from ..schemas.custom_field import FieldDefinitionRead, FieldOption
from ..schemas.opportunity import OpportunityCreate, OpportunityRead, OpportunityUpdate
from ..schemas.pipeline import PipelineDetail
from .gateway import PipelineGateway
from .notices import NoticeBoard, NoticeCallback
from .variants import SubformVariant, VariantRegistry, default_registry

logger = logging.getLogger(__name__)

DETAILS_SECTION = "details"
CUSTOM_SECTION = "custom"

FIXED_LABELS = {
    "name": "Name",
    "monetary_value": "Value",
    "expected_close_date": "Expected close date",
    "notes": "Notes",
    "stage_id": "Stage",
}


class FixedFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    monetary_value: float | None = Field(default=None, ge=0)
    expected_close_date: date | None = None
    notes: str | None = None
    stage_id: uuid.UUID


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_fixed_fields(
    data: dict[str, Any], pipeline: PipelineDetail
) -> tuple[FixedFields | None, dict[str, FieldError]]:
    errors: dict[str, FieldError] = {}
    fixed = None
    try:
        fixed = FixedFields.model_validate(data)
    except PydanticValidationError as exc:
        for err in exc.errors():
            name = str(err["loc"][0])
            label = FIXED_LABELS.get(name, name)
            if err["type"] == "missing" or _blank(data.get(name)):
                error = FieldError(ValidationKind.MISSING_REQUIRED_FIELD, f"{label} is required")
            elif err["type"] in ("greater_than_equal", "less_than_equal"):
                error = FieldError(ValidationKind.OUT_OF_RANGE, f"{label} cannot be negative")
            else:
                error = FieldError(ValidationKind.INVALID_TYPE, f"{label}: {err['msg']}")
            errors.setdefault(name, error)

    if "stage_id" not in errors:
        stage_id = data.get("stage_id")
        if not isinstance(stage_id, uuid.UUID):
            stage_id = uuid.UUID(str(stage_id))
        if pipeline.stage(stage_id) is None:
            errors["stage_id"] = FieldError(
                ValidationKind.INVALID_OPTION_MEMBERSHIP, "Stage does not belong to this pipeline"
            )
    if errors:
        fixed = None
    return fixed, errors


class OpportunityFormController:
    def __init__(
        self,
        gateway: PipelineGateway,
        pipeline: PipelineDetail,
        definitions: list[FieldDefinitionRead],
        *,
        opportunity: OpportunityRead | None = None,
        variant: SubformVariant | None = None,
        lookups: dict[str, list[FieldOption]] | None = None,
        initial_stage_id: uuid.UUID | None = None,
        submit_timeout: float | None = None,
        on_notice: NoticeCallback | None = None,
    ):
        self.gateway = gateway
        self.pipeline = pipeline
        self.opportunity = opportunity
        self.variant = variant
        self.variant_definitions = variant.with_options(lookups) if variant else []
        self._definitions = list(definitions)
        self.submit_timeout = submit_timeout or settings.submit_timeout_seconds
        self.notices = NoticeBoard(on_notice)
        self.errors: dict[str, FieldError] = {}
        self.active_section = DETAILS_SECTION
        self.submitting = False
        self.dirty = False

        if opportunity is not None:
            self._load_entity(opportunity)
        else:
            first = pipeline.first_stage
            self.fixed = {
                "name": "",
                "monetary_value": None,
                "expected_close_date": None,
                "notes": None,
                "stage_id": initial_stage_id or (first.id if first else None),
            }
            self.custom = {}
        self._take_snapshot()

    @classmethod
    async def open(
        cls,
        gateway: PipelineGateway,
        pipeline_id: uuid.UUID,
        *,
        opportunity_id: uuid.UUID | None = None,
        registry: FieldSchemaRegistry | None = None,
        variants: VariantRegistry | None = None,
        lookups: dict[str, list[FieldOption]] | None = None,
        **kwargs,
    ) -> "OpportunityFormController":
        """Load everything the form needs. NotFound propagates to the caller."""
        registry = registry or FieldSchemaRegistry(gateway)
        pipeline = await gateway.get_pipeline_with_stages(pipeline_id)
        # Stage-scoped fields are filtered per target stage later on
        definitions = await registry.definitions(pipeline_id, all_stages=True)
        opportunity = None
        if opportunity_id is not None:
            opportunity = await gateway.get_opportunity(opportunity_id)
        variant = (variants or default_registry()).for_pipeline(pipeline)
        logger.debug(
            "Opened form for pipeline %s with %d fields (variant=%s)",
            pipeline_id, len(definitions), variant.key if variant else None,
        )
        return cls(
            gateway,
            pipeline,
            definitions,
            opportunity=opportunity,
            variant=variant,
            lookups=lookups,
            **kwargs,
        )

    # ── State ──────────────────────────────────────────────────────────────

    def _load_entity(self, opp: OpportunityRead) -> None:
        self.fixed = {
            "name": opp.name,
            "monetary_value": opp.monetary_value,
            "expected_close_date": opp.expected_close_date,
            "notes": opp.notes,
            "stage_id": opp.stage_id,
        }
        self.custom = dict(opp.custom_fields or {})

    def _take_snapshot(self) -> None:
        self._snapshot = (copy.deepcopy(self.fixed), copy.deepcopy(self.custom))

    @property
    def is_edit(self) -> bool:
        return self.opportunity is not None

    @property
    def custom_definitions(self) -> list[FieldDefinitionRead]:
        """Pipeline fields that apply to the currently targeted stage."""
        return filter_definitions(self._definitions, stage_id=self.fixed.get("stage_id"))

    @property
    def all_definitions(self) -> list[FieldDefinitionRead]:
        return list(self.variant_definitions) + self.custom_definitions

    def sections(self) -> list[str]:
        sections = [DETAILS_SECTION]
        if self.variant is not None:
            sections.append(self.variant.section)
        if self.custom_definitions:
            sections.append(CUSTOM_SECTION)
        return sections

    def section_of(self, name: str) -> str:
        if name in FIXED_LABELS:
            return DETAILS_SECTION
        if self.variant is not None and any(d.name == name for d in self.variant_definitions):
            return self.variant.section
        return CUSTOM_SECTION

    def grouped_fields(self) -> list[tuple[str, list[FieldDefinitionRead]]]:
        return group_definitions(self.custom_definitions)

    def widgets(self, section: str, *, compact: bool = False) -> list[FieldWidget]:
        if self.variant is not None and section == self.variant.section:
            definitions = self.variant_definitions
        elif section == CUSTOM_SECTION:
            definitions = self.custom_definitions
        else:
            return []
        messages = {name: err.message for name, err in self.errors.items()}
        return render_fields(definitions, self.custom, messages, compact=compact)

    def set_field(self, name: str, value: Any) -> None:
        if name not in FIXED_LABELS:
            raise KeyError(name)
        if name != "name" and isinstance(value, str) and not value.strip():
            value = None
        if name == "stage_id" and isinstance(value, str):
            try:
                value = uuid.UUID(value)
            except ValueError:
                pass
        self.fixed[name] = value
        self.dirty = True

    def set_custom(self, name: str, value: Any) -> None:
        self.custom[name] = value
        self.dirty = True

    def input_custom(self, name: str, raw: Any) -> Any:
        """Parse raw widget input with the field's renderer and store it."""
        definition = self._definition(name)
        value = renderer_for(definition.field_type).parse(raw)
        self.set_custom(name, value)
        return value

    def toggle_option(self, name: str, option_value: str) -> list[str]:
        selected = MultiSelectRenderer.toggle(self.custom.get(name), option_value)
        self.set_custom(name, selected)
        return selected

    def _definition(self, name: str) -> FieldDefinitionRead:
        for definition in self.all_definitions:
            if definition.name == name:
                return definition
        raise KeyError(name)

    def reset(self) -> None:
        """Discard local edits and return to the loaded snapshot."""
        fixed, custom = self._snapshot
        self.fixed = copy.deepcopy(fixed)
        self.custom = copy.deepcopy(custom)
        self.errors = {}
        self.active_section = DETAILS_SECTION
        self.dirty = False

    # ── Validation and submission ──────────────────────────────────────────

    def validate(self) -> ValidationResult:
        """Validate every layer and activate the first section with an error."""
        _, fixed_errors = validate_fixed_fields(self.fixed, self.pipeline)
        custom_result = validate_all_fields(self.all_definitions, self.custom)
        result = ValidationResult({**fixed_errors, **custom_result.errors})
        self._show_errors(result.errors)
        return result

    def _show_errors(self, errors: dict[str, FieldError]) -> None:
        self.errors = dict(errors)
        if not errors:
            return
        with_errors = {self.section_of(name) for name in errors}
        for section in self.sections():
            if section in with_errors:
                self.active_section = section
                return

    def _custom_payload(self) -> dict[str, Any]:
        return {k: v for k, v in self.custom.items() if not _blank(v) and v != []}

    def build_payload(self) -> OpportunityCreate | OpportunityUpdate:
        fixed, errors = validate_fixed_fields(self.fixed, self.pipeline)
        if fixed is None:
            raise ValidationError(errors)
        if self.is_edit:
            return OpportunityUpdate(
                **fixed.model_dump(), custom_fields=self._custom_payload()
            )
        return OpportunityCreate(
            **fixed.model_dump(), pipeline_id=self.pipeline.id, custom_fields=self._custom_payload()
        )

    async def submit(self) -> OpportunityRead | None:
        """Validate, then persist with exactly one call.

        Returns the saved opportunity, or None when validation failed or the
        call did not succeed. Failures keep the entered data and dirty flag.
        """
        if self.submitting:
            return None
        if not self.validate().valid:
            return None

        payload = self.build_payload()
        self.submitting = True
        try:
            if self.is_edit:
                call = self.gateway.update_opportunity(self.opportunity.id, payload)
            else:
                call = self.gateway.create_opportunity(payload)
            saved = await asyncio.wait_for(call, self.submit_timeout)
        except ValidationError as exc:
            logger.info("Server rejected opportunity form: %s", exc.message)
            self._show_errors(exc.errors)
            self.notices.notify("error", "Some fields need attention", SubmissionError(exc.message, exc))
            return None
        except (DealflowError, asyncio.TimeoutError) as exc:
            logger.warning("Saving opportunity failed", exc_info=True)
            message = getattr(exc, "message", None) or "The request timed out"
            self.notices.notify("error", "Could not save the opportunity", SubmissionError(message, exc))
            return None
        finally:
            self.submitting = False

        self.opportunity = saved
        self._load_entity(saved)
        self._take_snapshot()
        self.errors = {}
        self.dirty = False
        self.notices.notify("info", f"Saved {saved.name!r}")
        return saved
