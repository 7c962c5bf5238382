"""A small SQL parser producing the expression tree used by DSQL queries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

KEYWORDS = frozenset(
    {
        "select", "from", "where", "and", "or", "not", "like", "regexp", "is",
        "null", "order", "by", "asc", "desc", "limit", "group", "having", "as",
        "insert", "update", "delete", "replace", "set", "show", "offset", "in",
        "between", "true", "false", "distinct", "union", "join", "on", "create",
        "drop", "alter", "use", "begin", "commit", "rollback", "into", "values",
        "key",
    }
)

_OTHER_STATEMENTS = {
    "insert": "Insert", "update": "Update", "delete": "Delete",
    "replace": "Insert", "set": "Set", "show": "Show", "create": "DDL",
    "drop": "DDL", "alter": "DDL", "use": "Use", "begin": "Begin",
    "commit": "Commit", "rollback": "Rollback",
}

_SYMBOLS = ("<=>", "<=", ">=", "!=", "<>", "=", "<", ">", ",", "(", ")", "*", ".", ";", "-")
_COMPARISONS = {"=": "=", "<": "<", ">": ">", "<=": "<=", ">=": ">=", "!=": "!=", "<>": "!=", "<=>": "<=>"}
_PLAIN_ID = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class SQLSyntaxError(ValueError):
    """Raised when a statement cannot be parsed."""

    def __init__(self, position: int, near: str = "") -> None:
        self.position = position
        self.near = near
        message = f"syntax error at position {position}"
        if near:
            message += f" near '{near}'"
        super().__init__(message)


class ValType(Enum):
    STR = 0
    INT = 1
    FLOAT = 2


@dataclass(frozen=True)
class ColName:
    name: str
    qualifier: tuple[str, ...] = ()


@dataclass(frozen=True)
class SQLVal:
    val: str
    type: ValType = ValType.STR


@dataclass(frozen=True)
class NullVal:
    pass


@dataclass(frozen=True)
class ComparisonExpr:
    operator: str
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class AndExpr:
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class OrExpr:
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class NotExpr:
    expr: "Expr"


@dataclass(frozen=True)
class ParenExpr:
    expr: "Expr"


@dataclass(frozen=True)
class IsExpr:
    operator: str
    expr: "Expr"


Expr = Union[ColName, SQLVal, NullVal, ComparisonExpr, AndExpr, OrExpr, NotExpr, ParenExpr, IsExpr]


class _Star:
    def __repr__(self) -> str:
        return "STAR"


STAR = _Star()


@dataclass(frozen=True)
class OrderItem:
    expr: Expr
    direction: str = "asc"


@dataclass
class SelectStatement:
    select_exprs: list = field(default_factory=list)
    from_table: str = "dual"
    where: Optional[Expr] = None
    group_by: list = field(default_factory=list)
    having: Optional[Expr] = None
    order_by: list = field(default_factory=list)
    limit_offset: Optional[Expr] = None
    limit_rowcount: Optional[Expr] = None


@dataclass
class OtherStatement:
    kind: str


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    start: int
    end: int

    @property
    def word(self) -> str:
        return self.text.lower() if self.kind == "kw" else ""


def _tokenize(sql: str) -> list[_Token]:
    tokens: list[_Token] = []
    i, n = 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch.isspace():
            i += 1
            continue
        start = i
        if ch.isalpha() or ch == "_":
            while i < n and (sql[i].isalnum() or sql[i] == "_"):
                i += 1
            text = sql[start:i]
            kind = "kw" if text.lower() in KEYWORDS else "id"
            tokens.append(_Token(kind, text, start, i))
        elif ch.isdigit():
            while i < n and sql[i].isdigit():
                i += 1
            is_float = False
            if i < n and sql[i] == ".":
                is_float = True
                i += 1
                while i < n and sql[i].isdigit():
                    i += 1
            if i < n and sql[i] in "eE":
                j = i + 1
                if j < n and sql[j] in "+-":
                    j += 1
                if j < n and sql[j].isdigit():
                    is_float = True
                    i = j
                    while i < n and sql[i].isdigit():
                        i += 1
            tokens.append(_Token("float" if is_float else "int", sql[start:i], start, i))
        elif ch in "'\"`":
            quote = ch
            i += 1
            chars: list[str] = []
            while True:
                if i >= n:
                    raise SQLSyntaxError(n + 1, "".join(chars))
                c = sql[i]
                if c == quote:
                    if i + 1 < n and sql[i + 1] == quote:
                        chars.append(quote)
                        i += 2
                        continue
                    i += 1
                    break
                if c == "\\" and quote != "`" and i + 1 < n:
                    chars.append(sql[i + 1])
                    i += 2
                    continue
                chars.append(c)
                i += 1
            kind = "qid" if quote == "`" else "str"
            tokens.append(_Token(kind, "".join(chars), start, i))
        else:
            for sym in _SYMBOLS:
                if sql.startswith(sym, i):
                    i += len(sym)
                    tokens.append(_Token("sym", sym, start, i))
                    break
            else:
                raise SQLSyntaxError(i + 2, ch)
    tokens.append(_Token("eof", "", n, n))
    return tokens


class _Parser:
    def __init__(self, sql: str) -> None:
        self.tokens = _tokenize(sql)
        self.pos = 0

    @property
    def tok(self) -> _Token:
        return self.tokens[self.pos]

    def advance(self) -> _Token:
        tok = self.tokens[self.pos]
        if tok.kind != "eof":
            self.pos += 1
        return tok

    def error(self) -> SQLSyntaxError:
        tok = self.tok
        return SQLSyntaxError(tok.end + 1, tok.text)

    def at_kw(self, word: str) -> bool:
        return self.tok.word == word

    def at_sym(self, sym: str) -> bool:
        return self.tok.kind == "sym" and self.tok.text == sym

    def expect_kw(self, word: str) -> None:
        if not self.at_kw(word):
            raise self.error()
        self.advance()

    def expect_sym(self, sym: str) -> None:
        if not self.at_sym(sym):
            raise self.error()
        self.advance()

    def statement(self) -> Union[SelectStatement, OtherStatement]:
        word = self.tok.word
        if word == "select":
            return self.select()
        if word in _OTHER_STATEMENTS:
            return OtherStatement(_OTHER_STATEMENTS[word])
        raise self.error()

    def select(self) -> SelectStatement:
        self.expect_kw("select")
        stmt = SelectStatement(select_exprs=[self.select_item()])
        while self.at_sym(","):
            self.advance()
            stmt.select_exprs.append(self.select_item())
        if self.at_kw("from"):
            self.advance()
            stmt.from_table = self.table_name()
        if self.at_kw("where"):
            self.advance()
            stmt.where = self.expr()
        if self.at_kw("group"):
            self.advance()
            self.expect_kw("by")
            stmt.group_by.append(self.expr())
            while self.at_sym(","):
                self.advance()
                stmt.group_by.append(self.expr())
        if self.at_kw("having"):
            self.advance()
            stmt.having = self.expr()
        if self.at_kw("order"):
            self.advance()
            self.expect_kw("by")
            stmt.order_by.append(self.order_item())
            while self.at_sym(","):
                self.advance()
                stmt.order_by.append(self.order_item())
        if self.at_kw("limit"):
            self.advance()
            first = self.primary()
            if self.at_sym(","):
                self.advance()
                stmt.limit_offset, stmt.limit_rowcount = first, self.primary()
            elif self.at_kw("offset"):
                self.advance()
                stmt.limit_rowcount, stmt.limit_offset = first, self.primary()
            else:
                stmt.limit_rowcount = first
        if self.at_sym(";"):
            self.advance()
        if self.tok.kind != "eof":
            raise self.error()
        return stmt

    def select_item(self) -> object:
        if self.at_sym("*"):
            self.advance()
            return STAR
        item = self.expr()
        if self.at_kw("as"):
            self.advance()
            if self.tok.kind not in ("id", "qid"):
                raise self.error()
            self.advance()
        elif self.tok.kind in ("id", "qid"):
            self.advance()
        return item

    def table_name(self) -> str:
        if self.tok.kind not in ("id", "qid"):
            raise self.error()
        name = self.advance().text
        if self.at_kw("as"):
            self.advance()
            if self.tok.kind not in ("id", "qid"):
                raise self.error()
            self.advance()
        elif self.tok.kind in ("id", "qid"):
            self.advance()
        return name

    def order_item(self) -> OrderItem:
        expr = self.expr()
        direction = "asc"
        if self.at_kw("asc") or self.at_kw("desc"):
            direction = self.advance().text.lower()
        return OrderItem(expr, direction)

    def expr(self) -> Expr:
        left = self.and_expr()
        while self.at_kw("or"):
            self.advance()
            left = OrExpr(left, self.and_expr())
        return left

    def and_expr(self) -> Expr:
        left = self.not_expr()
        while self.at_kw("and"):
            self.advance()
            left = AndExpr(left, self.not_expr())
        return left

    def not_expr(self) -> Expr:
        if self.at_kw("not"):
            self.advance()
            return NotExpr(self.not_expr())
        return self.predicate()

    def predicate(self) -> Expr:
        left = self.primary()
        tok = self.tok
        if tok.kind == "sym" and tok.text in _COMPARISONS:
            self.advance()
            return ComparisonExpr(_COMPARISONS[tok.text], left, self.primary())
        negate = ""
        if tok.word == "not":
            nxt = self.tokens[self.pos + 1]
            if nxt.word in ("like", "regexp"):
                self.advance()
                negate = "not "
        if self.tok.word in ("like", "regexp"):
            op = negate + self.advance().text.lower()
            return ComparisonExpr(op, left, self.primary())
        if self.at_kw("is"):
            self.advance()
            op = "is "
            if self.at_kw("not"):
                self.advance()
                op += "not "
            if not (self.at_kw("null") or self.at_kw("true") or self.at_kw("false")):
                raise self.error()
            return IsExpr(op + self.advance().text.lower(), left)
        return left

    def primary(self) -> Expr:
        tok = self.tok
        if tok.kind in ("id", "qid"):
            parts = [self.advance().text]
            while self.at_sym(".") and len(parts) < 3:
                self.advance()
                if self.tok.kind not in ("id", "qid"):
                    raise self.error()
                parts.append(self.advance().text)
            return ColName(parts[-1], tuple(parts[:-1]))
        if tok.kind == "str":
            self.advance()
            return SQLVal(tok.text, ValType.STR)
        if tok.kind in ("int", "float"):
            self.advance()
            return SQLVal(tok.text, ValType.INT if tok.kind == "int" else ValType.FLOAT)
        if tok.word == "null":
            self.advance()
            return NullVal()
        if self.at_sym("-"):
            self.advance()
            num = self.tok
            if num.kind not in ("int", "float"):
                raise self.error()
            self.advance()
            return SQLVal("-" + num.text, ValType.INT if num.kind == "int" else ValType.FLOAT)
        if self.at_sym("("):
            self.advance()
            inner = self.expr()
            self.expect_sym(")")
            return ParenExpr(inner)
        raise self.error()


def parse(sql: str) -> Union[SelectStatement, OtherStatement]:
    """Parse one SQL statement. Raises ``SQLSyntaxError`` on malformed input."""
    return _Parser(sql).statement()


def _format_id(name: str) -> str:
    if _PLAIN_ID.fullmatch(name) and name.lower() not in KEYWORDS:
        return name
    return "`" + name.replace("`", "``") + "`"


def _format_str(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def to_sql(node: object) -> str:
    """Render an expression tree back to SQL text."""
    if node is None:
        return ""
    if node is STAR:
        return "*"
    if isinstance(node, ColName):
        return ".".join(_format_id(part) for part in (*node.qualifier, node.name))
    if isinstance(node, SQLVal):
        return _format_str(node.val) if node.type is ValType.STR else node.val
    if isinstance(node, NullVal):
        return "null"
    if isinstance(node, ComparisonExpr):
        return f"{to_sql(node.left)} {node.operator} {to_sql(node.right)}"
    if isinstance(node, AndExpr):
        return f"{to_sql(node.left)} and {to_sql(node.right)}"
    if isinstance(node, OrExpr):
        return f"{to_sql(node.left)} or {to_sql(node.right)}"
    if isinstance(node, NotExpr):
        return f"not {to_sql(node.expr)}"
    if isinstance(node, ParenExpr):
        return f"({to_sql(node.expr)})"
    if isinstance(node, IsExpr):
        return f"{to_sql(node.expr)} {node.operator}"
    if isinstance(node, OrderItem):
        return f"{to_sql(node.expr)} {node.direction}"
    raise TypeError(f"cannot render {type(node).__name__}")