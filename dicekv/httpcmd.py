"""Conversion of HTTP requests into server commands."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union
from urllib.parse import parse_qs, unquote, urlsplit

KEY = "key"
KEY_PREFIX = "key_prefix"
FIELD = "field"
PATH = "path"
VALUE = "value"

_PRIORITY_KEYS = (KEY, FIELD, PATH, VALUE)

QueryType = Union[str, Mapping[str, Any], None]


@dataclass
class RedisCmd:
    """A command name with its string arguments."""

    cmd: str
    args: list[str] = field(default_factory=list)


def _shortest_digits(value: float) -> tuple[str, int]:
    """Shortest round-trip digits of a positive float and its decimal point position."""
    _, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    text = "".join(str(d) for d in digit_tuple)
    stripped = text.rstrip("0")
    exponent += len(text) - len(stripped)
    return stripped, len(stripped) + exponent


def _exp_form(digits: str, dp: int, *, short_negative: bool) -> str:
    exp = dp - 1
    mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
    if exp < 0:
        width = 1 if short_negative else 2
        return f"{mantissa}e-{abs(exp):0{width}d}"
    return f"{mantissa}e+{exp:02d}"


def _fixed_form(digits: str, dp: int) -> str:
    if dp <= 0:
        return "0." + "0" * (-dp) + digits
    if dp >= len(digits):
        return digits + "0" * (dp - len(digits))
    return digits[:dp] + "." + digits[dp:]


def _format_float(value: float, *, for_json: bool) -> str:
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    digits, dp = _shortest_digits(magnitude)
    if for_json:
        if magnitude < 1e-6 or magnitude >= 1e21:
            return sign + _exp_form(digits, dp, short_negative=True)
        return sign + _fixed_form(digits, dp)
    exp = dp - 1
    if exp < -4 or exp >= 6:
        return sign + _exp_form(digits, dp, short_negative=False)
    return sign + _fixed_form(digits, dp)


def _format_value(value: Any) -> str:
    """Render a decoded JSON value the way a plain value formatter would."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_float(float(value), for_json=False)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, dict):
        inner = " ".join(f"{k}:{_format_value(value[k])}" for k in sorted(value))
        return "map[" + inner + "]"
    return str(value)


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _json_string(text: str) -> str:
    encoded = json.dumps(text, ensure_ascii=False)
    for raw, escaped in _HTML_ESCAPES.items():
        encoded = encoded.replace(raw, escaped)
    return encoded


def _marshal(value: Any) -> str:
    """Compact JSON encoding with sorted keys and HTML-safe strings."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_float(float(value), for_json=True)
    if isinstance(value, str):
        return _json_string(value)
    if isinstance(value, list):
        return "[" + ",".join(_marshal(item) for item in value) + "]"
    if isinstance(value, dict):
        return "{" + ",".join(
            f"{_json_string(k)}:{_marshal(value[k])}" for k in sorted(value)
        ) + "}"
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


def _parse_number(text: str) -> float:
    number = float(text)
    if math.isinf(number):
        raise ValueError(f"number {text} is out of range")
    return number


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name}")


def _decode_body(body: bytes | str | None) -> dict[str, Any]:
    if body is None:
        return {}
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    if not text:
        return {}
    parsed = json.loads(
        text,
        parse_int=_parse_number,
        parse_float=_parse_number,
        parse_constant=_reject_constant,
    )
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError("request body must be a JSON object")
    return parsed


def _query_value(query: QueryType, name: str) -> str:
    if not query:
        return ""
    if isinstance(query, str):
        return parse_qs(query, keep_blank_values=True).get(name, [""])[0]
    value = query.get(name, "")
    if isinstance(value, str):
        return value
    return next(iter(value), "")


def parse_http_request(
    path: str,
    query: QueryType = None,
    body: bytes | str | None = None,
) -> RedisCmd:
    """Build a command from a request path, its query parameters and a JSON body.

    ``path`` may carry its own query string; it is used when ``query`` is not given.
    Raises ``ValueError`` for an empty command or a malformed body.
    """
    parts = urlsplit(path)
    url_path = unquote(parts.path)
    command = url_path[1:] if url_path.startswith("/") else url_path
    if not command:
        raise ValueError("invalid command")
    command = command.upper()

    args: list[str] = []
    key_prefix = _query_value(query if query is not None else parts.query, KEY_PREFIX)
    if key_prefix and command == "JSON.INGEST":
        args.append(key_prefix)

    json_body = _decode_body(body)
    for key in _PRIORITY_KEYS:
        if key in json_body:
            args.append(_format_value(json_body.pop(key)))

    for key, value in json_body.items():
        if isinstance(value, str):
            # A string "true" marks a bare flag such as NX.
            args.append(key if value == "true" else value)
        elif isinstance(value, (dict, list)):
            args.append(_marshal(value))
        else:
            args.append(_format_value(value))

    return RedisCmd(cmd=command, args=args)