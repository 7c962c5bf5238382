"""Helpers for driving the server in tests: command splitting and JSON comparison."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any


def parse_command(cmd: str) -> list[str]:
    """Split a command line on spaces, keeping double-quoted sections together."""
    args: list[str] = []
    current: list[str] = []
    in_quotes = False

    def flush() -> None:
        if current:
            args.append("".join(current))
            current.clear()

    for char in cmd:
        if char == " " and not in_quotes:
            flush()
            continue
        if char == '"':
            in_quotes = not in_quotes
        current.append(char)
    flush()

    return [_trim_quotes(arg) for arg in args]


def _trim_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1]
    return text


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name}")


def _loads(text: str) -> Any:
    return json.loads(text, parse_int=float, parse_constant=_reject_constant)


def is_json_response(text: str) -> bool:
    """Report whether ``text`` is a non-empty, valid JSON document."""
    if text == "":
        return False
    try:
        _loads(text)
    except ValueError:
        return False
    return True


def normalize_json(value: Any) -> Any:
    """Return a deep copy of a decoded JSON value with fresh containers."""
    if isinstance(value, dict):
        return {key: normalize_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [normalize_json(item) for item in value]
    return value


def _deep_equal(left: Any, right: Any) -> bool:
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(
            _deep_equal(left[key], right[key]) for key in left
        )
    if isinstance(left, list):
        return len(left) == len(right) and all(
            _deep_equal(a, b) for a, b in zip(left, right)
        )
    return left == right


def json_equals_any(expected: Iterable[str], actual: str) -> bool:
    """Report whether ``actual`` equals any of the ``expected`` JSON documents.

    Raises ``ValueError`` if a document that is compared is not valid JSON.
    """
    for candidate in expected:
        expected_value = normalize_json(_loads(candidate))
        actual_value = normalize_json(_loads(actual))
        if _deep_equal(expected_value, actual_value):
            return True
    return False


def unordered_equal(expected: Any, actual: Any) -> bool:
    """Report whether two lists have equal length and every expected item occurs in ``actual``."""
    if not isinstance(expected, list) or not isinstance(actual, list):
        return False
    if len(expected) != len(actual):
        return False
    return all(
        any(type(e) is type(a) and e == a for a in actual) for e in expected
    )