"""Tests for custom field validation."""

from dealflow.errors import ValidationKind
from dealflow.fields.validator import validate_all_fields, validate_field_value
from dealflow.schemas.custom_field import FieldDefinitionRead


def _defn(name, field_type, **kwargs):
    return FieldDefinitionRead(name=name, label=kwargs.pop("label", name.title()), field_type=field_type, **kwargs)


def test_required_date_missing_is_the_only_error():
    definitions = [
        _defn("delivery_date", "date", label="Delivery date", required=True),
        _defn("notes", "textarea"),
        _defn("priority", "select", options=["low", "high"]),
    ]
    result = validate_all_fields(definitions, {"notes": "call back"})
    assert not result.valid
    assert list(result.errors) == ["delivery_date"]
    assert result.errors["delivery_date"].kind is ValidationKind.MISSING_REQUIRED_FIELD
    assert result.messages() == {"delivery_date": "Delivery date is required"}


def test_all_errors_reported_at_once():
    definitions = [
        _defn("a", "text", required=True),
        _defn("b", "number"),
        _defn("c", "email", required=True),
    ]
    result = validate_all_fields(definitions, {"b": "lots"})
    assert set(result.errors) == {"a", "b", "c"}
    assert result.errors["b"].kind is ValidationKind.INVALID_TYPE


def test_valid_values():
    definitions = [
        _defn("qty", "number", required=True),
        _defn("when", "datetime"),
        _defn("tags", "multiselect", options=["x", "y"]),
    ]
    result = validate_all_fields(definitions, {"qty": "4", "when": "2026-01-01T09:00:00Z", "tags": ["x"]})
    assert result.valid


def test_blank_strings_count_as_missing():
    defn = _defn("ref", "text", required=True)
    assert validate_field_value(defn, "   ").kind is ValidationKind.MISSING_REQUIRED_FIELD
    assert validate_field_value(_defn("tags", "multiselect", required=True), []).kind is (
        ValidationKind.MISSING_REQUIRED_FIELD
    )


def test_boolean_absent_is_false():
    defn = _defn("urgent", "boolean", required=True)
    assert validate_field_value(defn, None) is None
    assert validate_field_value(defn, False) is None
    assert validate_field_value(defn, "perhaps").kind is ValidationKind.INVALID_TYPE


def test_select_membership():
    defn = _defn("priority", "select", options=["low", "high"])
    assert validate_field_value(defn, "low") is None
    error = validate_field_value(defn, "urgent")
    assert error.kind is ValidationKind.INVALID_OPTION_MEMBERSHIP


def test_select_without_options_accepts_any_value():
    defn = _defn("order_type_id", "select")
    assert validate_field_value(defn, "42") is None


def test_multiselect_membership():
    defn = _defn("tags", "multiselect", options=["x", "y"])
    error = validate_field_value(defn, ["x", "z"])
    assert error.kind is ValidationKind.INVALID_OPTION_MEMBERSHIP
    assert "z" in error.message


def test_number_range():
    defn = _defn("discount", "percentage", validation={"min": 0, "max": 30})
    assert validate_field_value(defn, 10) is None
    assert validate_field_value(defn, 31).kind is ValidationKind.OUT_OF_RANGE
    assert validate_field_value(defn, -1).message == "Discount: minimum is 0"


def test_pattern_with_custom_message():
    defn = _defn("sku", "text", validation={"pattern": r"^SKU-\d+$", "message": "Use SKU-<number>"})
    assert validate_field_value(defn, "SKU-12") is None
    error = validate_field_value(defn, "12")
    assert error.kind is ValidationKind.PATTERN_MISMATCH
    assert error.message == "Use SKU-<number>"


def test_invalid_pattern_is_ignored():
    defn = _defn("sku", "text", validation={"pattern": "("})
    assert validate_field_value(defn, "anything") is None


def test_unknown_keys_ignored():
    result = validate_all_fields([_defn("a", "text")], {"a": "x", "extra": object()})
    assert result.valid
