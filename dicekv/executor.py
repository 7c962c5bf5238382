"""Execution of DSQL queries over a set of keyed objects."""

from __future__ import annotations

import copy
import json
import operator
import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cmp_to_key, lru_cache
from typing import Any, Callable, Optional

from dicekv.dsql import (
    ASC,
    BOOL,
    DESC,
    FLOAT,
    INT64,
    NIL,
    STRING,
    TEMP_KEY,
    TEMP_PREFIX,
    TEMP_VALUE,
    DSQLQuery,
)
from dicekv.obj import Obj
from dicekv.sqlast import (
    AndExpr,
    ColName,
    ComparisonExpr,
    NullVal,
    OrExpr,
    ParenExpr,
    SQLVal,
    ValType,
)

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

Typed = tuple[Any, str]


class QueryExecutionError(ValueError):
    """Raised when a query cannot be evaluated against the data."""


class NoResultsFoundError(QueryExecutionError):
    """Raised when an expression yields no result for a row."""

    def __init__(self, message: str = "ERR No results found") -> None:
        super().__init__(message)


class InvalidJSONPathError(QueryExecutionError):
    """Raised when a JSON path in a query is malformed."""

    def __init__(self, message: str = "ERR invalid JSONPath") -> None:
        super().__init__(message)


@dataclass
class QueryResultRow:
    key: str
    value: Obj


# --- JSON paths -------------------------------------------------------------


@dataclass(frozen=True)
class _Step:
    kind: str  # "child", "index" or "wild"
    arg: Any = None
    descend: bool = False


def _descendants(node: Any) -> Iterable[Any]:
    yield node
    if isinstance(node, dict):
        for child in node.values():
            yield from _descendants(child)
    elif isinstance(node, list):
        for child in node:
            yield from _descendants(child)


def _apply_step(step: _Step, node: Any) -> list[Any]:
    if step.kind == "child":
        if isinstance(node, dict) and step.arg in node:
            return [node[step.arg]]
        return []
    if step.kind == "index":
        if isinstance(node, list) and -len(node) <= step.arg < len(node):
            return [node[step.arg]]
        return []
    if isinstance(node, dict):
        return list(node.values())
    if isinstance(node, list):
        return list(node)
    return []


class _JSONPath:
    def __init__(self, steps: list[_Step]) -> None:
        self.steps = steps

    def get(self, data: Any) -> list[Any]:
        nodes = [data]
        for step in self.steps:
            if step.descend:
                nodes = [d for node in nodes for d in _descendants(node)]
            nodes = [r for node in nodes for r in _apply_step(step, node)]
        return nodes


def _dotted_step(path: str, i: int, descend: bool) -> tuple[_Step, int]:
    if path.startswith("*", i):
        return _Step("wild", descend=descend), i + 1
    j = i
    while j < len(path) and path[j] not in ".[":
        j += 1
    if j == i:
        raise InvalidJSONPathError()
    return _Step("child", path[i:j], descend), j


def _bracket_step(path: str, i: int, descend: bool) -> tuple[_Step, int]:
    close = path.find("]", i)
    if close < 0:
        raise InvalidJSONPathError()
    inner = path[i + 1 : close].strip()
    if inner == "*":
        return _Step("wild", descend=descend), close + 1
    if len(inner) >= 2 and inner[0] == inner[-1] and inner[0] in "'\"":
        return _Step("child", inner[1:-1], descend), close + 1
    if re.fullmatch(r"-?[0-9]+", inner):
        return _Step("index", int(inner), descend), close + 1
    raise InvalidJSONPathError()


def _compile_path(path: str) -> _JSONPath:
    if not path.startswith("$"):
        raise InvalidJSONPathError()
    steps: list[_Step] = []
    i = 1
    while i < len(path):
        if path.startswith("..", i):
            i += 2
            if path.startswith("[", i):
                step, i = _bracket_step(path, i, True)
            else:
                step, i = _dotted_step(path, i, True)
        elif path[i] == ".":
            step, i = _dotted_step(path, i + 1, False)
        elif path[i] == "[":
            step, i = _bracket_step(path, i, False)
        else:
            raise InvalidJSONPathError()
        steps.append(step)
    return _JSONPath(steps)


# --- Values and types -------------------------------------------------------


def _type_name(value: Any) -> str:
    return "<nil>" if value is None else type(value).__name__


def _is_json_field(expr: SQLVal, obj: Obj) -> bool:
    # $key and $value are rewritten to _key and _value, so a string starting
    # with the prefix refers to a path inside the stored document.
    return obj.is_json() and expr.type is ValType.STR and expr.val.startswith(TEMP_PREFIX)


def _infer_type_and_convert(value: Any) -> Typed:
    if isinstance(value, str):
        return value, STRING
    if isinstance(value, bool):
        return value, BOOL
    if isinstance(value, int):
        return value, INT64
    if isinstance(value, float):
        if value.is_integer() and _INT64_MIN <= value <= _INT64_MAX:
            return int(value), INT64
        return value, FLOAT
    if value is None:
        return None, NIL
    raise QueryExecutionError(f"unsupported JSONPath result type: {_type_name(value)}")


def _retrieve_value_from_json(path: str, obj: Obj, cache: dict[str, Any]) -> Typed:
    parts = path.split(".")
    if len(parts) < 2:
        raise InvalidJSONPathError()
    path_key = "$." + ".".join(parts[1:])
    compiled = cache.get(path_key)
    if compiled is None:
        compiled = _compile_path(path_key)
        cache[path_key] = compiled
    results = compiled.get(obj.value)
    if not results:
        return None, NIL
    return _infer_type_and_convert(results[0])


def _value_and_type(obj: Obj) -> Typed:
    value = obj.value
    if isinstance(value, str):
        return value, STRING
    if isinstance(value, int) and not isinstance(value, bool):
        return value, INT64
    if isinstance(value, float):
        return value, FLOAT
    raise QueryExecutionError(f"unsupported value type: {_type_name(value)}")


def _sql_value(expr: SQLVal) -> Typed:
    if expr.type is ValType.STR:
        return expr.val, STRING
    if expr.type is ValType.INT:
        try:
            number = int(expr.val, 10)
        except ValueError as err:
            raise QueryExecutionError(f"invalid integer {expr.val!r}") from err
        if not _INT64_MIN <= number <= _INT64_MAX:
            raise QueryExecutionError(f"integer {expr.val} is out of range")
        return number, INT64
    if expr.type is ValType.FLOAT:
        try:
            return float(expr.val), FLOAT
        except ValueError as err:
            raise QueryExecutionError(f"invalid float {expr.val!r}") from err
    raise QueryExecutionError(f"unsupported SQLVal type: {expr.type}")


def _expr_value(expr: Any, row: QueryResultRow, cache: dict[str, Any]) -> Typed:
    if isinstance(expr, ColName):
        if expr.name == TEMP_KEY:
            return row.key, STRING
        if expr.name == TEMP_VALUE:
            return _value_and_type(row.value)
        raise QueryExecutionError(f"unknown column: {expr.name}")
    if isinstance(expr, SQLVal):
        if _is_json_field(expr, row.value):
            return _retrieve_value_from_json(expr.val, row.value, cache)
        return _sql_value(expr)
    if isinstance(expr, NullVal):
        return None, NIL
    raise QueryExecutionError(f"unsupported expression type: {type(expr).__name__}")


# --- Comparisons ------------------------------------------------------------

_ORDERED_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@lru_cache(maxsize=256)
def _wildcard_regex(pattern: str) -> re.Pattern[str]:
    parts = [".*" if c == "*" else "." if c == "?" else re.escape(c) for c in pattern]
    return re.compile("".join(parts), re.DOTALL)


def _wildcard_match(pattern: str, text: str) -> bool:
    return _wildcard_regex(pattern).fullmatch(text) is not None


def _compare_strings(left: str, right: str, op: str) -> bool:
    lowered = op.lower()
    if lowered in _ORDERED_OPS:
        return _ORDERED_OPS[lowered](left, right)
    if lowered == "like":
        return _wildcard_match(right, left)
    if lowered == "not like":
        return not _wildcard_match(right, left)
    raise QueryExecutionError(f"unsupported operator for strings: {op}")


def _compare_numbers(left: Any, right: Any, op: str, kind: str) -> bool:
    if op in _ORDERED_OPS:
        return _ORDERED_OPS[op](left, right)
    raise QueryExecutionError(f"unsupported operator for {kind}: {op}")


def _evaluate_comparison(expr: ComparisonExpr, row: QueryResultRow, cache: dict[str, Any]) -> bool:
    try:
        left, left_type = _expr_value(expr.left, row, cache)
        right, right_type = _expr_value(expr.right, row, cache)
    except NoResultsFoundError:
        return False
    if left_type == NIL or right_type == NIL:
        return False
    if left_type != right_type:
        raise QueryExecutionError(
            f"incompatible types in comparison: {left_type} and {right_type}"
        )
    if left_type == STRING:
        return _compare_strings(left, right, expr.operator)
    if left_type == INT64:
        return _compare_numbers(left, right, expr.operator, "integers")
    if left_type == FLOAT:
        return _compare_numbers(left, right, expr.operator, "floats")
    raise QueryExecutionError(f"unsupported type for comparison: {left_type}")


def evaluate_where_clause(
    expr: Any, row: QueryResultRow, json_path_cache: Optional[dict[str, Any]] = None
) -> bool:
    """Evaluate a WHERE expression for one row."""
    cache = {} if json_path_cache is None else json_path_cache
    if isinstance(expr, ParenExpr):
        return evaluate_where_clause(expr.expr, row, cache)
    if isinstance(expr, ComparisonExpr):
        return _evaluate_comparison(expr, row, cache)
    if isinstance(expr, AndExpr):
        return evaluate_where_clause(expr.left, row, cache) and evaluate_where_clause(
            expr.right, row, cache
        )
    if isinstance(expr, OrExpr):
        return evaluate_where_clause(expr.left, row, cache) or evaluate_where_clause(
            expr.right, row, cache
        )
    raise QueryExecutionError(f"unsupported expression type: {type(expr).__name__}")


# --- Ordering ---------------------------------------------------------------


def _order_by_value(order_by: str, row: QueryResultRow, cache: dict[str, Any]) -> Typed:
    if order_by == TEMP_KEY:
        return row.key, STRING
    if order_by == TEMP_VALUE:
        return _value_and_type(row.value)
    if _is_json_field(SQLVal(order_by), row.value):
        return _retrieve_value_from_json(order_by, row.value, cache)
    raise QueryExecutionError(f"invalid ORDER BY clause: {order_by}")


def _compare_order_values(left: Any, right: Any, kind: str, order: str) -> bool:
    ascending = order == ASC
    if kind in (STRING, INT64, FLOAT):
        return left < right if ascending else left > right
    if kind == BOOL:
        return (not left and right) if ascending else (left and not right)
    raise QueryExecutionError(f"unsupported type for comparison: {kind}")


def _less(a: tuple[QueryResultRow, Any, str], b: tuple[QueryResultRow, Any, str], order: str) -> bool:
    _, left, left_type = a
    _, right, right_type = b
    if left_type == NIL and right_type == NIL:
        return False
    if left_type == NIL:
        return order == DESC
    if right_type == NIL:
        return order == ASC
    if left_type != right_type:
        return False
    try:
        return bool(_compare_order_values(left, right, left_type, order))
    except QueryExecutionError:
        return False


def _sort_rows(rows: list[QueryResultRow], query: DSQLQuery, cache: dict[str, Any]) -> list[QueryResultRow]:
    keyed = [(row, *_order_by_value(query.order_by.order_by, row, cache)) for row in rows]
    order = query.order_by.order

    def compare(a: Any, b: Any) -> int:
        if _less(a, b, order):
            return -1
        if _less(b, a, order):
            return 1
        return 0

    keyed.sort(key=cmp_to_key(compare))
    return [item[0] for item in keyed]


# --- Execution --------------------------------------------------------------


def marshal_result_if_json(row: QueryResultRow) -> None:
    """Replace a JSON document held by the row with its compact text form."""
    if row.value.is_json():
        try:
            row.value.value = json.dumps(
                row.value.value, separators=(",", ":"), ensure_ascii=False
            )
        except (TypeError, ValueError) as err:
            raise QueryExecutionError(str(err)) from err


def _pairs(data: Any) -> Iterable[tuple[str, Obj]]:
    return data.items() if hasattr(data, "items") else data


def execute_query(query: DSQLQuery, data: Any) -> list[QueryResultRow]:
    """Run ``query`` over ``data``, a mapping or iterable of (key, object) pairs."""
    cache: dict[str, Any] = {}
    result: list[QueryResultRow] = []
    for key, obj in _pairs(data):
        row = QueryResultRow(key, copy.copy(obj))
        if query.where is not None:
            try:
                matched = evaluate_where_clause(query.where, row, cache)
            except NoResultsFoundError:
                continue
            if not matched:
                continue
        result.append(row)
        if query.limit > 0 and len(result) >= query.limit and not query.order_by.order_by:
            break

    if query.order_by.order_by:
        result = _sort_rows(result, query, cache)

    if query.limit > 0:
        result = result[: query.limit]

    for row in result:
        marshal_result_if_json(row)
        if not query.selection.key_selection:
            row.key = ""
        if not query.selection.value_selection:
            row.value = Obj()
    return result