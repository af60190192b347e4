"""Typed custom-field values.

Opportunity.custom_fields is persisted as plain JSON, but inside the engine
each entry is held as one variant of a tagged union. The variant a name must
hold is decided by its field definition, never by the shape of the raw value.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Union

from .types import NUMERIC_TYPES, TEXT_TYPES, FieldType

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class FieldTypeError(ValueError):
    """Raw value cannot be represented as the definition's type."""


@dataclass(frozen=True)
class TextValue:
    value: str

    def to_json(self) -> str:
        return self.value


@dataclass(frozen=True)
class NumberValue:
    value: float

    def to_json(self) -> float:
        return self.value


@dataclass(frozen=True)
class DateValue:
    value: date

    def to_json(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class DateTimeValue:
    value: datetime

    def to_json(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class BoolValue:
    value: bool

    def to_json(self) -> bool:
        return self.value


@dataclass(frozen=True)
class SelectValue:
    value: str

    def to_json(self) -> str:
        return self.value


@dataclass(frozen=True)
class MultiSelectValue:
    values: tuple[str, ...]

    def to_json(self) -> list[str]:
        return list(self.values)


FieldValue = Union[
    TextValue, NumberValue, DateValue, DateTimeValue, BoolValue, SelectValue, MultiSelectValue
]


def parse_number(raw: Any) -> float:
    if isinstance(raw, bool):
        raise FieldTypeError("expected a number, got a boolean")
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip().replace(",", "."))
        except ValueError:
            raise FieldTypeError(f"{raw!r} is not a number") from None
    else:
        raise FieldTypeError(f"expected a number, got {type(raw).__name__}")
    if not math.isfinite(number):
        raise FieldTypeError("number must be finite")
    return number


def parse_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        # Anything longer must be a whole timestamp
        try:
            return parse_datetime(text).date()
        except FieldTypeError:
            raise FieldTypeError(f"{raw!r} is not a valid date") from None
    raise FieldTypeError(f"expected a date, got {type(raw).__name__}")


def parse_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        moment = raw
    elif isinstance(raw, date):
        moment = datetime.combine(raw, time.min)
    elif isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise FieldTypeError(f"{raw!r} is not a valid timestamp") from None
    else:
        raise FieldTypeError(f"expected a timestamp, got {type(raw).__name__}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise FieldTypeError(f"{raw!r} is not a boolean")


def coerce_value(field_type: FieldType | str, raw: Any) -> FieldValue | None:
    """Convert a raw JSON value into the variant required by ``field_type``.

    Returns None for absent input (None, blank strings). Raises
    FieldTypeError when the value is present but of the wrong shape.
    """
    field_type = FieldType(field_type)
    if raw is None:
        return None
    if isinstance(raw, str) and not raw.strip() and field_type is not FieldType.BOOLEAN:
        return None

    if field_type in TEXT_TYPES:
        if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
            raise FieldTypeError(f"expected text, got {type(raw).__name__}")
        return TextValue(str(raw))

    if field_type in NUMERIC_TYPES:
        return NumberValue(parse_number(raw))

    if field_type is FieldType.DATE:
        return DateValue(parse_date(raw))

    if field_type is FieldType.DATETIME:
        return DateTimeValue(parse_datetime(raw))

    if field_type is FieldType.BOOLEAN:
        return BoolValue(parse_bool(raw))

    if field_type is FieldType.SELECT:
        if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
            raise FieldTypeError(f"expected an option value, got {type(raw).__name__}")
        return SelectValue(str(raw))

    if field_type is FieldType.MULTISELECT:
        if isinstance(raw, str) or not isinstance(raw, Iterable):
            raise FieldTypeError("expected a list of option values")
        items = []
        for item in raw:
            if item is None or isinstance(item, bool) or not isinstance(item, (str, int, float)):
                raise FieldTypeError("multiselect items must be option values")
            items.append(str(item))
        return MultiSelectValue(tuple(items))

    raise FieldTypeError(f"unsupported field type {field_type.value!r}")  # pragma: no cover


class TypedValues(Mapping[str, FieldValue]):
    """Custom-field map keyed by field name, typed by its definitions.

    Keys without a definition are kept aside in ``orphans`` rather than
    silently dropped, so a renamed field never loses data without a
    migration step.
    """

    def __init__(self, values: dict[str, FieldValue], orphans: dict[str, Any] | None = None):
        self._values = values
        self.orphans = orphans or {}

    @classmethod
    def from_raw(cls, definitions: Iterable[Any], raw: Mapping[str, Any] | None) -> "TypedValues":
        by_name = {d.name: d for d in definitions}
        values: dict[str, FieldValue] = {}
        orphans: dict[str, Any] = {}
        for name, raw_value in (raw or {}).items():
            definition = by_name.get(name)
            if definition is None:
                orphans[name] = raw_value
                continue
            typed = coerce_value(definition.field_type, raw_value)
            if typed is not None:
                values[name] = typed
        return cls(values, orphans)

    def __getitem__(self, name: str) -> FieldValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def to_json(self, include_orphans: bool = True) -> dict[str, Any]:
        data = {name: value.to_json() for name, value in self._values.items()}
        if include_orphans:
            for name, raw in self.orphans.items():
                data.setdefault(name, raw)
        return data

