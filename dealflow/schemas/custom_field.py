"""Custom field definition schemas."""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ..fields.types import CHOICE_TYPES, DEFAULT_GROUP, FieldType, parse_field_options


class FieldOption(BaseModel):
    value: str
    label: str


class FieldValidationRule(BaseModel):
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    message: str | None = None


class _OptionsMixin(BaseModel):
    @field_validator("options", mode="before", check_fields=False)
    @classmethod
    def _parse_options(cls, value):
        if value is None:
            return value
        if isinstance(value, list) and all(isinstance(v, FieldOption) for v in value):
            return value
        return parse_field_options(value)


class FieldDefinitionCreate(_OptionsMixin):
    name: str = Field(min_length=1, max_length=200, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    label: str = Field(min_length=1)
    field_type: FieldType
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    validation: FieldValidationRule | None = None
    placeholder: str | None = None
    description: str | None = None
    group: str | None = None
    width: Literal["full", "half"] = "full"
    position: int | None = None
    visible_in_kanban: bool = False
    stage_id: uuid.UUID | None = None


class FieldDefinitionUpdate(_OptionsMixin):
    name: str | None = Field(default=None, min_length=1, max_length=200, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    label: str | None = None
    field_type: FieldType | None = None
    required: bool | None = None
    options: list[FieldOption] | None = None
    validation: FieldValidationRule | None = None
    placeholder: str | None = None
    description: str | None = None
    group: str | None = None
    width: Literal["full", "half"] | None = None
    position: int | None = None
    visible_in_kanban: bool | None = None
    is_active: bool | None = None
    # Renaming or retyping rewrites stored values; refused unless set
    migrate: bool = False


class FieldDefinitionRead(_OptionsMixin):
    id: uuid.UUID | None = None
    pipeline_id: uuid.UUID | None = None
    stage_id: uuid.UUID | None = None
    name: str
    label: str
    field_type: FieldType
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    validation: FieldValidationRule | None = None
    placeholder: str | None = None
    description: str | None = None
    group: str | None = None
    width: Literal["full", "half"] = "full"
    position: int = 0
    visible_in_kanban: bool = False

    @classmethod
    def from_model(cls, defn) -> "FieldDefinitionRead":
        return cls(
            id=defn.id,
            pipeline_id=defn.pipeline_id,
            stage_id=defn.stage_id,
            name=defn.name,
            label=defn.label,
            field_type=defn.field_type,
            required=defn.required,
            options=defn.options_json or [],
            validation=defn.validation_json,
            placeholder=defn.placeholder,
            description=defn.description,
            group=defn.group_name,
            width=defn.width or "full",
            position=defn.position or 0,
            visible_in_kanban=defn.visible_in_kanban,
        )

    @property
    def group_label(self) -> str:
        return self.group or DEFAULT_GROUP

    @property
    def option_values(self) -> list[str]:
        return [opt.value for opt in self.options]

    @property
    def has_options(self) -> bool:
        return self.field_type in CHOICE_TYPES and bool(self.options)
