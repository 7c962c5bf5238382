"""Classification of decoded JSON values."""

from __future__ import annotations

from typing import Any

EMPTY_STR = ""

OBJECT_TYPE = "object"
ARRAY_TYPE = "array"
STRING_TYPE = "string"
INTEGER_TYPE = "integer"
NUMBER_TYPE = "number"
BOOLEAN_TYPE = "boolean"
NULL_TYPE = "null"
UNKNOWN_TYPE = "unknown"
NUMBER_ZERO_VALUE = 0


def get_json_field_type(value: Any) -> str:
    """Return the JSON type name of a decoded value."""
    if isinstance(value, dict):
        return OBJECT_TYPE
    if isinstance(value, list):
        return ARRAY_TYPE
    if isinstance(value, str):
        return STRING_TYPE
    # bool is a subclass of int, so it must be checked first.
    if isinstance(value, bool):
        return BOOLEAN_TYPE
    if isinstance(value, int):
        return INTEGER_TYPE
    if isinstance(value, float):
        return NUMBER_TYPE
    if value is None:
        return NULL_TYPE
    return UNKNOWN_TYPE


def is_array(data: Any) -> bool:
    """Report whether ``data`` is a sequence container (list or tuple)."""
    return isinstance(data, (list, tuple))