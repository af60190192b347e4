"""Dynamic field renderer contract.

One renderer per field type. ``render`` describes the editable surface for a
definition and its current value in toolkit-neutral terms; ``parse`` turns
raw input from that surface back into the value stored in the custom-field
map. Compact rendering only changes layout hints, never parsing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any

from ..schemas.custom_field import FieldDefinitionRead, FieldOption
from .types import FieldType
from .values import FieldTypeError, parse_bool, parse_date, parse_datetime, parse_number


@dataclass
class FieldWidget:
    name: str
    label: str
    control: str
    value: Any
    input_type: str | None = None
    placeholder: str = ""
    required: bool = False
    options: list[FieldOption] = field(default_factory=list)
    width: str = "full"
    compact: bool = False
    error: str | None = None
    description: str | None = None
    attrs: dict[str, Any] = field(default_factory=dict)


class FieldRenderer:
    control = "input"
    input_type: str | None = "text"
    default_placeholder = ""

    def render(
        self,
        definition: FieldDefinitionRead,
        value: Any,
        *,
        error: str | None = None,
        compact: bool = False,
    ) -> FieldWidget:
        return FieldWidget(
            name=definition.name,
            label=definition.label,
            control=self.control,
            input_type=self.input_type,
            value=self.display(value),
            placeholder=definition.placeholder or self.default_placeholder,
            required=definition.required,
            options=list(definition.options),
            width=definition.width,
            compact=compact,
            error=error,
            # Compact cards drop help text
            description=None if compact else definition.description,
            attrs=self.attrs(definition, compact),
        )

    def display(self, value: Any) -> Any:
        return "" if value is None else str(value)

    def attrs(self, definition: FieldDefinitionRead, compact: bool) -> dict[str, Any]:
        return {}

    def parse(self, raw: Any) -> Any:
        if raw is None:
            return ""
        return str(raw)


class TextRenderer(FieldRenderer):
    pass


class TextareaRenderer(FieldRenderer):
    control = "textarea"
    input_type = None

    def attrs(self, definition, compact):
        return {"rows": 2 if compact else 4}


class UrlRenderer(FieldRenderer):
    input_type = "url"
    default_placeholder = "https://"


class EmailRenderer(FieldRenderer):
    input_type = "email"
    default_placeholder = "email@example.com"


class PhoneRenderer(FieldRenderer):
    input_type = "tel"
    default_placeholder = "(00) 00000-0000"


class NumberRenderer(FieldRenderer):
    input_type = "number"
    step: str | None = None

    def display(self, value):
        return "" if value is None else value

    def attrs(self, definition, compact):
        return {"step": self.step} if self.step else {}

    def parse(self, raw: Any) -> int | float | None:
        """Empty or unparseable input becomes None, never NaN or ''."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        try:
            number = parse_number(raw)
        except FieldTypeError:
            return None
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and number.is_integer() and not any(c in raw for c in ".,eE"):
            return int(number)
        return number


class DecimalRenderer(NumberRenderer):
    step = "any"


class CurrencyRenderer(NumberRenderer):
    step = "0.01"
    default_placeholder = "0.00"


class PercentageRenderer(NumberRenderer):
    default_placeholder = "0"

    def attrs(self, definition, compact):
        return {"min": 0, "max": 100, "suffix": "%"}

    def parse(self, raw: Any) -> int | float | None:
        number = super().parse(raw)
        if number is None:
            return None
        return min(max(number, 0), 100)


class DateRenderer(FieldRenderer):
    control = "date-picker"
    input_type = None

    def parse(self, raw: Any) -> str | None:
        """Store dates as ISO calendar strings (YYYY-MM-DD)."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        try:
            return parse_date(raw).isoformat()
        except FieldTypeError:
            return None


class DateTimeRenderer(FieldRenderer):
    input_type = "datetime-local"

    def display(self, value):
        if not value:
            return ""
        return str(value)[:16]

    def parse(self, raw: Any) -> str | None:
        """Store datetimes as full UTC ISO timestamps."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        try:
            return parse_datetime(raw).astimezone(timezone.utc).isoformat()
        except FieldTypeError:
            return None


class SelectRenderer(FieldRenderer):
    control = "select"
    input_type = None
    default_placeholder = "Select..."

    def parse(self, raw: Any) -> str | None:
        if raw is None or raw == "":
            return None
        return str(raw)


class MultiSelectRenderer(FieldRenderer):
    control = "checkbox-group"
    input_type = None

    def display(self, value):
        return list(value) if isinstance(value, (list, tuple)) else []

    def parse(self, raw: Any) -> list[str]:
        if raw is None or raw == "":
            return []
        if isinstance(raw, str):
            return [raw]
        return [str(v) for v in raw]

    @staticmethod
    def toggle(current: Iterable[str] | None, option_value: str) -> list[str]:
        """Append the option if absent, remove it otherwise."""
        selected = list(current or [])
        if option_value in selected:
            return [v for v in selected if v != option_value]
        return selected + [option_value]


class BooleanRenderer(FieldRenderer):
    control = "switch"
    input_type = None

    def display(self, value):
        return bool(value)

    def parse(self, raw: Any) -> bool:
        try:
            return parse_bool(raw) if raw is not None else False
        except FieldTypeError:
            return bool(raw)


RENDERERS: dict[FieldType, FieldRenderer] = {
    FieldType.TEXT: TextRenderer(),
    FieldType.TEXTAREA: TextareaRenderer(),
    FieldType.URL: UrlRenderer(),
    FieldType.EMAIL: EmailRenderer(),
    FieldType.PHONE: PhoneRenderer(),
    FieldType.NUMBER: NumberRenderer(),
    FieldType.DECIMAL: DecimalRenderer(),
    FieldType.CURRENCY: CurrencyRenderer(),
    FieldType.PERCENTAGE: PercentageRenderer(),
    FieldType.DATE: DateRenderer(),
    FieldType.DATETIME: DateTimeRenderer(),
    FieldType.SELECT: SelectRenderer(),
    FieldType.MULTISELECT: MultiSelectRenderer(),
    FieldType.BOOLEAN: BooleanRenderer(),
}


def renderer_for(field_type: FieldType | str) -> FieldRenderer:
    return RENDERERS[FieldType(field_type)]


def render_fields(
    definitions: Iterable[FieldDefinitionRead],
    values: Mapping[str, Any] | None,
    errors: Mapping[str, str] | None = None,
    *,
    compact: bool = False,
) -> list[FieldWidget]:
    values = values or {}
    errors = errors or {}
    return [
        renderer_for(d.field_type).render(
            d, values.get(d.name), error=errors.get(d.name), compact=compact
        )
        for d in definitions
    ]
