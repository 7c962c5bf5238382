import pytest

from dicekv.dsql import (
    ASC,
    DSQLQuery,
    QueryOrder,
    QuerySelection,
    UnsupportedDSQLStatementError,
    parse_limit,
    parse_order_by,
    parse_query,
    parse_select_expressions,
    replace_custom_syntax,
)
from dicekv.sqlast import (
    AndExpr,
    ColName,
    ComparisonExpr,
    IsExpr,
    OrExpr,
    ParenExpr,
    SQLVal,
    ValType,
    parse,
)


def _like(pattern):
    return ComparisonExpr("like", ColName("_key"), ColName(pattern))


VALID = [
    (
        "SELECT $key, $value WHERE $key like `match:100:*` ORDER BY $value DESC LIMIT 10",
        QuerySelection(True, True), _like("match:100:*"), QueryOrder("_value", "desc"), 10,
    ),
    (
        "SELECT $key, $value WHERE $key like `match:100:*` AND $value = 'test' ORDER BY $key LIMIT 5",
        QuerySelection(True, True),
        AndExpr(_like("match:100:*"), ComparisonExpr("=", ColName("_value"), SQLVal("test"))),
        QueryOrder("_key", ASC), 5,
    ),
    (
        "SELECT $key WHERE $key like `user:*` AND $value > 25 AND $key LIKE 'user:1%'",
        QuerySelection(True, False),
        AndExpr(
            AndExpr(_like("user:*"), ComparisonExpr(">", ColName("_value"), SQLVal("25", ValType.INT))),
            ComparisonExpr("like", ColName("_key"), SQLVal("user:1%")),
        ),
        QueryOrder(), 0,
    ),
    (
        "SELECT $value WHERE $key like `test:*`",
        QuerySelection(False, True), _like("test:*"), QueryOrder(), 0,
    ),
    (
        "SELECT $key, $value WHERE $key like `test:*` ORDER BY $key ASC",
        QuerySelection(True, True), _like("test:*"), QueryOrder("_key", "asc"), 0,
    ),
    (
        "SELECT $key, $value WHERE $key like `test:*` AND $value IS NULL",
        QuerySelection(True, True),
        AndExpr(_like("test:*"), IsExpr("is null", ColName("_value"))),
        QueryOrder(), 0,
    ),
    (
        "SELECT $key WHERE ($key LIKE `test:*`) AND ($value > 10 OR $value < 5)",
        QuerySelection(True, False),
        AndExpr(
            ParenExpr(_like("test:*")),
            ParenExpr(OrExpr(
                ComparisonExpr(">", ColName("_value"), SQLVal("10", ValType.INT)),
                ComparisonExpr("<", ColName("_value"), SQLVal("5", ValType.INT)),
            )),
        ),
        QueryOrder(), 0,
    ),
]


@pytest.mark.parametrize("sql,selection,where,order,limit", VALID)
def test_parse_query_valid(sql, selection, where, order, limit):
    got = parse_query(sql)
    assert got.selection == selection
    assert got.order_by == order
    assert got.limit == limit
    assert got.where == where


@pytest.mark.parametrize(
    "sql,message",
    [
        ("SELECT $key WHERE $key like `match:100:*` ORDER BY invalid_key LIMIT 5",
         "only $key and $value expressions are supported in ORDER BY clause"),
        ("SELECT field1, field2 WHERE $key like `test`",
         "only $key and $value are supported in SELECT expressions"),
        ("INSERT INTO table_name (field_name) values ('value')",
         "unsupported DSQL statement: *sqlparser.Insert"),
        ("", "error parsing SQL statement: syntax error at position 1"),
        ("SELECT $key WHERE $key like `match:100:*` HAVING $key > 1",
         "HAVING and GROUP BY clauses are not supported"),
        ("SELECT $key WHERE $key like `match:100:*` GROUP BY $key",
         "HAVING and GROUP BY clauses are not supported"),
        ("SELECT $key WHERE $key like `match:100:*` LIMIT abc", "invalid LIMIT value"),
        ("SELECT $key FROM 123",
         "error parsing SQL statement: syntax error at position 21 near '123'"),
        ("SELECT $key FROM tablename", "FROM clause is not supported"),
    ],
)
def test_parse_query_errors(sql, message):
    with pytest.raises(ValueError) as info:
        parse_query(sql)
    assert str(info.value) == message


def test_insert_raises_unsupported_type():
    with pytest.raises(UnsupportedDSQLStatementError):
        parse_query("INSERT INTO t (f) values ('v')")


def _stmt(sql):
    return parse(replace_custom_syntax(sql))


@pytest.mark.parametrize(
    "sql,want",
    [
        ("SELECT $key, $value WHERE $key like `test`", QuerySelection(True, True)),
        ("SELECT $key WHERE $key like `test`", QuerySelection(True, False)),
        ("SELECT $value WHERE $key like `test`", QuerySelection(False, True)),
        ("SELECT invalid WHERE $key like `test`", None),
        ("SELECT $key, $value, extra WHERE $key like `test`", None),
    ],
)
def test_parse_select_expressions(sql, want):
    if want is None:
        with pytest.raises(ValueError):
            parse_select_expressions(_stmt(sql))
    else:
        assert parse_select_expressions(_stmt(sql)) == want


@pytest.mark.parametrize(
    "sql,want",
    [
        ("SELECT $key WHERE $key like `test` ORDER BY $key ASC", QueryOrder("_key", ASC)),
        ("SELECT $key WHERE $key like `test` ORDER BY $key DESC", QueryOrder("_key", "desc")),
        ("SELECT $value WHERE $key like `test` ORDER BY $value ASC", QueryOrder("_value", "asc")),
        ("SELECT $value WHERE $key like `test` ORDER BY $value DESC", QueryOrder("_value", "desc")),
        ("SELECT $value WHERE $key like `test` ORDER BY $value.name ASC", QueryOrder("_value.name", "asc")),
        ("SELECT $value WHERE $key like `test` ORDER BY $value.address.city DESC",
         QueryOrder("_value.address.city", "desc")),
        ("SELECT $value WHERE $key like `test` ORDER BY `$value.items[0].price`",
         QueryOrder("_value.items[0].price", "asc")),
        ("SELECT $value WHERE $key like `test` ORDER BY `$value.users[*].contacts[0].email`",
         QueryOrder("_value.users[*].contacts[0].email", "asc")),
        ("SELECT $key WHERE $key like `test`", QueryOrder()),
        ("SELECT $key WHERE $key like `test` ORDER BY invalid", None),
        ("SELECT $key WHERE $key like `test` ORDER BY $key ASC, $value DESC", None),
    ],
)
def test_parse_order_by(sql, want):
    if want is None:
        with pytest.raises(ValueError):
            parse_order_by(_stmt(sql))
    else:
        assert parse_order_by(_stmt(sql)) == want


@pytest.mark.parametrize(
    "sql,want",
    [
        ("SELECT $key WHERE $key like `test` LIMIT 10", 10),
        ("SELECT $key WHERE $key like `test`", 0),
        ("SELECT $key WHERE $key like `test` LIMIT abc", None),
    ],
)
def test_parse_limit(sql, want):
    if want is None:
        with pytest.raises(ValueError):
            parse_limit(_stmt(sql))
    else:
        assert parse_limit(_stmt(sql)) == want


@pytest.mark.parametrize(
    "query,expected",
    [
        (DSQLQuery(selection=QuerySelection(key_selection=True)), "SELECT $key"),
        (DSQLQuery(selection=QuerySelection(value_selection=True)), "SELECT $value"),
        (DSQLQuery(selection=QuerySelection(True, True)), "SELECT $key, $value"),
        (DSQLQuery(selection=QuerySelection(key_selection=True), where=SQLVal("$value > 10")),
         "SELECT $key WHERE '$value > 10'"),
        (DSQLQuery(selection=QuerySelection(True, True), order_by=QueryOrder("_key", "DESC")),
         "SELECT $key, $value ORDER BY $key DESC"),
        (DSQLQuery(selection=QuerySelection(True, True), limit=5), "SELECT $key, $value LIMIT 5"),
        (
            DSQLQuery(
                selection=QuerySelection(True, True),
                where=AndExpr(_like("match:100:*"),
                              ComparisonExpr("=", ColName("_value"), SQLVal("test"))),
                order_by=QueryOrder("_key", "DESC"),
                limit=5,
            ),
            "SELECT $key, $value WHERE $key like `match:100:*` and $value = 'test' ORDER BY $key DESC LIMIT 5",
        ),
    ],
)
def test_dsql_query_string(query, expected):
    assert str(query) == expected


@pytest.mark.parametrize(
    "where",
    [
        "$key like 'k*'",
        "$key like 'k*' AND $value > 'v2' AND $value < 'v100' AND $value = 'abcdefgh'",
        "'$value.field1.field2.field3.score' > '$value.field1.score2' AND $key like 'json*' AND $value != 'x'",
    ],
)
def test_fingerprint_depends_only_on_where(where):
    first = parse_query(f"SELECT $key WHERE {where}")
    second = parse_query(f"SELECT $value WHERE {where} ORDER BY $key LIMIT 3")
    other = parse_query(f"SELECT $key WHERE {where} AND $key = 'z'")
    assert first.fingerprint.startswith("f_")
    assert first.fingerprint == second.fingerprint
    assert first.fingerprint != other.fingerprint


def test_replace_custom_syntax():
    assert replace_custom_syntax("SELECT $key, $value") == "SELECT _key, _value"