"""Custom field validation.

Pure functions: no I/O, no registry lookups. Every definition is checked
independently so callers get the complete error map in one pass.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import FieldError, ValidationKind
from ..schemas.custom_field import FieldDefinitionRead
from .types import NUMERIC_TYPES, TEXT_TYPES, FieldType
from .values import FieldTypeError, MultiSelectValue, NumberValue, SelectValue, TextValue, coerce_value


@dataclass
class ValidationResult:
    errors: dict[str, FieldError] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def messages(self) -> dict[str, str]:
        return {name: err.message for name, err in self.errors.items()}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def validate_field_value(definition: FieldDefinitionRead, value: Any) -> FieldError | None:
    label = definition.label or definition.name
    field_type = definition.field_type

    if field_type is FieldType.BOOLEAN:
        # Absence means false; only a malformed value can fail
        if value is None:
            return None
        try:
            coerce_value(field_type, value)
        except FieldTypeError as exc:
            return FieldError(ValidationKind.INVALID_TYPE, f"{label}: {exc}")
        return None

    if _is_blank(value):
        if definition.required:
            return FieldError(ValidationKind.MISSING_REQUIRED_FIELD, f"{label} is required")
        return None

    try:
        typed = coerce_value(field_type, value)
    except FieldTypeError as exc:
        return FieldError(ValidationKind.INVALID_TYPE, f"{label}: {exc}")

    if isinstance(typed, SelectValue) and definition.has_options:
        if typed.value not in definition.option_values:
            return FieldError(
                ValidationKind.INVALID_OPTION_MEMBERSHIP,
                f"{label}: {typed.value!r} is not an available option",
            )

    if isinstance(typed, MultiSelectValue) and definition.has_options:
        allowed = set(definition.option_values)
        unknown = [v for v in typed.values if v not in allowed]
        if unknown:
            return FieldError(
                ValidationKind.INVALID_OPTION_MEMBERSHIP,
                f"{label}: {', '.join(unknown)} not among the available options",
            )

    return _check_rule(definition, typed, label)


def _check_rule(definition: FieldDefinitionRead, typed, label: str) -> FieldError | None:
    rule = definition.validation
    if rule is None:
        return None

    if definition.field_type in NUMERIC_TYPES and isinstance(typed, NumberValue):
        if rule.min is not None and typed.value < rule.min:
            return FieldError(ValidationKind.OUT_OF_RANGE, rule.message or f"{label}: minimum is {rule.min:g}")
        if rule.max is not None and typed.value > rule.max:
            return FieldError(ValidationKind.OUT_OF_RANGE, rule.message or f"{label}: maximum is {rule.max:g}")

    if rule.pattern and definition.field_type in TEXT_TYPES and isinstance(typed, TextValue):
        try:
            matched = re.search(rule.pattern, typed.value) is not None
        except re.error:
            return None
        if not matched:
            return FieldError(ValidationKind.PATTERN_MISMATCH, rule.message or f"{label}: invalid format")

    return None


def validate_all_fields(
    definitions: Iterable[FieldDefinitionRead],
    values: Mapping[str, Any] | None,
) -> ValidationResult:
    values = values or {}
    result = ValidationResult()
    for definition in definitions:
        error = validate_field_value(definition, values.get(definition.name))
        if error is not None:
            result.errors[definition.name] = error
    return result
