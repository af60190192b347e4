"""Field type catalogue and option parsing."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DECIMAL = "decimal"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    DATE = "date"
    DATETIME = "datetime"
    SELECT = "select"
    MULTISELECT = "multiselect"
    BOOLEAN = "boolean"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"


TEXT_TYPES = frozenset({
    FieldType.TEXT, FieldType.TEXTAREA, FieldType.URL, FieldType.EMAIL, FieldType.PHONE,
})
NUMERIC_TYPES = frozenset({
    FieldType.NUMBER, FieldType.DECIMAL, FieldType.CURRENCY, FieldType.PERCENTAGE,
})
TEMPORAL_TYPES = frozenset({FieldType.DATE, FieldType.DATETIME})
CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.MULTISELECT})

DEFAULT_GROUP = "General"


def parse_field_options(raw: Any) -> list[dict[str, str]]:
    """Normalize stored options into a list of {value, label} dicts.

    Accepts a list, a JSON-encoded list, or nothing. Anything unparseable
    yields an empty list. Bare strings inside the list become options whose
    label equals their value.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []

    options: list[dict[str, str]] = []
    for item in raw:
        if isinstance(item, dict) and "value" in item:
            value = str(item["value"])
            options.append({"value": value, "label": str(item.get("label") or value)})
        elif isinstance(item, (str, int, float)):
            options.append({"value": str(item), "label": str(item)})
    return options
