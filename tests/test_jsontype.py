import pytest

from dicekv.jsontype import get_json_field_type, is_array


@pytest.mark.parametrize(
    "value, expected",
    [
        ("123", "string"),
        (1, "integer"),
        (1.1, "number"),
        (True, "boolean"),
        (None, "null"),
        (["string"], "array"),
        ({}, "object"),
        (object(), "unknown"),
    ],
)
def test_get_json_field_type(value, expected):
    assert get_json_field_type(value) == expected


def test_false_is_boolean_not_integer():
    assert get_json_field_type(False) == "boolean"


@pytest.mark.parametrize(
    "value, expected",
    [
        ([1, 2], True),
        ((1,), True),
        ([], True),
        ("abc", False),
        ({}, False),
        (5, False),
        (None, False),
    ],
)
def test_is_array(value, expected):
    assert is_array(value) is expected