"""Parsing of DSQL queries: SELECT over keys and values with WHERE, ORDER BY and LIMIT."""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field
from typing import Optional

from dicekv.sqlast import (
    STAR,
    ColName,
    Expr,
    OtherStatement,
    SelectStatement,
    SQLSyntaxError,
    parse,
    to_sql,
)

ASC = "asc"
DESC = "desc"
STRING = "string"
INT64 = "int64"
FLOAT = "float"
BOOL = "bool"
NIL = "nil"
QWATCH = "qwatch"

CUSTOM_KEY = "$key"
CUSTOM_VALUE = "$value"
TEMP_PREFIX = "_"
TEMP_KEY = TEMP_PREFIX + "key"
TEMP_VALUE = TEMP_PREFIX + "value"


class UnsupportedDSQLStatementError(ValueError):
    """Raised when a statement other than SELECT is given."""

    def __init__(self, stmt: OtherStatement) -> None:
        self.stmt = stmt
        super().__init__(f"unsupported DSQL statement: *sqlparser.{stmt.kind}")


@dataclass(frozen=True)
class QuerySelection:
    key_selection: bool = False
    value_selection: bool = False


@dataclass(frozen=True)
class QueryOrder:
    order_by: str = ""
    order: str = ""


def _replace_all(text: str, mapping: dict[str, str]) -> str:
    pattern = re.compile("|".join(re.escape(k) for k in mapping))
    return pattern.sub(lambda m: mapping[m.group(0)], text)


def _replace_placeholders(text: str) -> str:
    return _replace_all(text, {TEMP_KEY: CUSTOM_KEY, TEMP_VALUE: CUSTOM_VALUE})


def replace_custom_syntax(sql: str) -> str:
    """Turn ``$key``/``$value`` into identifiers the parser accepts."""
    return _replace_all(sql, {CUSTOM_KEY: TEMP_KEY, CUSTOM_VALUE: TEMP_VALUE})


@dataclass
class DSQLQuery:
    selection: QuerySelection = field(default_factory=QuerySelection)
    where: Optional[Expr] = None
    order_by: QueryOrder = field(default_factory=QueryOrder)
    limit: int = 0
    fingerprint: str = ""

    def __str__(self) -> str:
        chosen = []
        if self.selection.key_selection:
            chosen.append(CUSTOM_KEY)
        if self.selection.value_selection:
            chosen.append(CUSTOM_VALUE)
        parts = [f"SELECT {', '.join(chosen)}" if chosen else "SELECT *"]
        if self.where is not None:
            parts.append(f"WHERE {_replace_placeholders(to_sql(self.where))}")
        if self.order_by.order_by:
            parts.append(
                f"ORDER BY {_replace_placeholders(self.order_by.order_by)} {self.order_by.order}"
            )
        if self.limit > 0:
            parts.append(f"LIMIT {self.limit}")
        return " ".join(parts)


def parse_query(sql: str) -> DSQLQuery:
    """Parse a DSQL query. Raises ``ValueError`` describing what is wrong."""
    try:
        stmt = parse(replace_custom_syntax(sql))
    except SQLSyntaxError as err:
        raise ValueError(f"error parsing SQL statement: {err}") from err
    if not isinstance(stmt, SelectStatement):
        raise UnsupportedDSQLStatementError(stmt)
    if stmt.group_by or stmt.having is not None:
        raise ValueError("HAVING and GROUP BY clauses are not supported")
    selection = parse_select_expressions(stmt)
    if stmt.from_table.strip("`") != "dual":
        raise ValueError("FROM clause is not supported")
    order = parse_order_by(stmt)
    limit = parse_limit(stmt)
    return DSQLQuery(
        selection=selection,
        where=stmt.where,
        order_by=order,
        limit=limit,
        fingerprint=f"f_{_farm_hash64(to_sql(stmt.where).encode())}",
    )


def parse_select_expressions(stmt: SelectStatement) -> QuerySelection:
    """Work out which of key and value a SELECT asks for."""
    exprs = stmt.select_exprs
    if not exprs:
        raise ValueError("no fields selected in result set")
    if len(exprs) > 2:
        raise ValueError("only $key and $value are supported in SELECT expressions")
    key = value = False
    for expr in exprs:
        if expr is STAR:
            raise ValueError("error parsing SELECT expression: *")
        if not isinstance(expr, ColName):
            raise ValueError("only column names are supported in SELECT")
        if expr.name == TEMP_KEY:
            key = True
        elif expr.name == TEMP_VALUE:
            value = True
        else:
            raise ValueError("only $key and $value are supported in SELECT expressions")
    return QuerySelection(key, value)


def _trim_quotes_or_backticks(text: str) -> str:
    if len(text) > 1 and text[0] == text[-1] and text[0] in "'`":
        return text[1:-1]
    return text


def parse_order_by(stmt: SelectStatement) -> QueryOrder:
    """Extract the single ORDER BY term, which must refer to the key or the value."""
    if len(stmt.order_by) > 1:
        raise ValueError("only one ORDER BY clause is supported")
    if not stmt.order_by:
        return QueryOrder()
    item = stmt.order_by[0]
    expr = _trim_quotes_or_backticks(to_sql(item.expr).strip("`"))
    if expr not in (TEMP_KEY, TEMP_VALUE) and not expr.startswith(TEMP_VALUE):
        raise ValueError("only $key and $value expressions are supported in ORDER BY clause")
    return QueryOrder(expr, item.direction)


def parse_limit(stmt: SelectStatement) -> int:
    """Return the LIMIT row count, or 0 when there is none."""
    if stmt.limit_rowcount is None:
        return 0
    text = to_sql(stmt.limit_rowcount)
    if not re.fullmatch(r"[+-]?[0-9]+", text):
        raise ValueError("invalid LIMIT value")
    return int(text)


_M = (1 << 64) - 1
_K0 = 0xC3A5C85C97CB3127
_K1 = 0xB492B66FBE98F273
_K2 = 0x9AE16A3B2F90404F


def _f64(s: bytes, i: int) -> int:
    return struct.unpack_from("<Q", s, i)[0]


def _f32(s: bytes, i: int) -> int:
    return struct.unpack_from("<I", s, i)[0]


def _rot(v: int, shift: int) -> int:
    return ((v >> shift) | (v << (64 - shift))) & _M


def _shift_mix(v: int) -> int:
    return v ^ (v >> 47)


def _len16(u: int, v: int, mul: int) -> int:
    a = ((u ^ v) * mul) & _M
    a ^= a >> 47
    b = ((v ^ a) * mul) & _M
    b ^= b >> 47
    return (b * mul) & _M


def _weak(s: bytes, i: int, a: int, b: int) -> tuple[int, int]:
    w, x, y, z = _f64(s, i), _f64(s, i + 8), _f64(s, i + 16), _f64(s, i + 24)
    a = (a + w) & _M
    b = _rot((b + a + z) & _M, 21)
    c = a
    a = (a + x + y) & _M
    b = (b + _rot(a, 44)) & _M
    return (a + z) & _M, (b + c) & _M


def _farm_hash64(s: bytes) -> int:
    n = len(s)
    if n <= 16:
        if n >= 8:
            mul = (_K2 + n * 2) & _M
            a = (_f64(s, 0) + _K2) & _M
            b = _f64(s, n - 8)
            c = (_rot(b, 37) * mul + a) & _M
            d = ((_rot(a, 25) + b) * mul) & _M
            return _len16(c, d, mul)
        if n >= 4:
            mul = (_K2 + n * 2) & _M
            return _len16((n + (_f32(s, 0) << 3)) & _M, _f32(s, n - 4), mul)
        if n > 0:
            y = (s[0] + (s[n >> 1] << 8)) & 0xFFFFFFFF
            z = (n + (s[n - 1] << 2)) & 0xFFFFFFFF
            return (_shift_mix(((y * _K2) ^ (z * _K0)) & _M) * _K2) & _M
        return _K2
    mul = (_K2 + n * 2) & _M
    if n <= 32:
        a = (_f64(s, 0) * _K1) & _M
        b = _f64(s, 8)
        c = (_f64(s, n - 8) * mul) & _M
        d = (_f64(s, n - 16) * _K2) & _M
        return _len16(
            (_rot((a + b) & _M, 43) + _rot(c, 30) + d) & _M,
            (a + _rot((b + _K2) & _M, 18) + c) & _M,
            mul,
        )
    if n <= 64:
        a = (_f64(s, 0) * _K2) & _M
        b = _f64(s, 8)
        c = (_f64(s, n - 8) * mul) & _M
        d = (_f64(s, n - 16) * _K2) & _M
        y = (_rot((a + b) & _M, 43) + _rot(c, 30) + d) & _M
        z = _len16(y, (a + _rot((b + _K2) & _M, 18) + c) & _M, mul)
        e = (_f64(s, 16) * mul) & _M
        f = _f64(s, 24)
        g = ((y + _f64(s, n - 32)) * mul) & _M
        h = ((z + _f64(s, n - 24)) * mul) & _M
        return _len16(
            (_rot((e + f) & _M, 43) + _rot(g, 30) + h) & _M,
            (e + _rot((f + a) & _M, 18) + g) & _M,
            mul,
        )
    seed = 81
    x = seed
    y = (seed * _K1 + 113) & _M
    z = (_shift_mix((y * _K2 + 113) & _M) * _K2) & _M
    v0 = v1 = w0 = w1 = 0
    x = (x * _K2 + _f64(s, 0)) & _M
    end = ((n - 1) // 64) * 64
    last64 = end + ((n - 1) & 63) - 63
    for i in range(0, end, 64):
        x = (_rot((x + y + v0 + _f64(s, i + 8)) & _M, 37) * _K1) & _M
        y = (_rot((y + v1 + _f64(s, i + 48)) & _M, 42) * _K1) & _M
        x ^= w1
        y = (y + v0 + _f64(s, i + 40)) & _M
        z = (_rot((z + w0) & _M, 33) * _K1) & _M
        v0, v1 = _weak(s, i, (v1 * _K1) & _M, (x + w0) & _M)
        w0, w1 = _weak(s, i + 32, (z + w1) & _M, (y + _f64(s, i + 16)) & _M)
        z, x = x, z
    mul = (_K1 + ((z & 0xFF) << 1)) & _M
    i = last64
    w0 = (w0 + ((n - 1) & 63)) & _M
    v0 = (v0 + w0) & _M
    w0 = (w0 + v0) & _M
    x = (_rot((x + y + v0 + _f64(s, i + 8)) & _M, 37) * mul) & _M
    y = (_rot((y + v1 + _f64(s, i + 48)) & _M, 42) * mul) & _M
    x ^= (w1 * 9) & _M
    y = (y + v0 * 9 + _f64(s, i + 40)) & _M
    z = (_rot((z + w0) & _M, 33) * mul) & _M
    v0, v1 = _weak(s, i, (v1 * mul) & _M, (x + w0) & _M)
    w0, w1 = _weak(s, i + 32, (z + w1) & _M, (y + _f64(s, i + 16)) & _M)
    z, x = x, z
    return _len16(
        (_len16(v0, w0, mul) + _shift_mix(y) * _K0 + z) & _M,
        (_len16(v1, w1, mul) + x) & _M,
        mul,
    )