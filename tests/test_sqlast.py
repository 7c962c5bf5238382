import pytest

from dicekv.sqlast import (
    STAR,
    AndExpr,
    ColName,
    ComparisonExpr,
    IsExpr,
    NotExpr,
    NullVal,
    OtherStatement,
    ParenExpr,
    SQLSyntaxError,
    SQLVal,
    SelectStatement,
    ValType,
    parse,
    to_sql,
)


def test_select_without_from_defaults_to_dual():
    stmt = parse("SELECT _key WHERE _key like `match:100:*`")
    assert isinstance(stmt, SelectStatement)
    assert stmt.from_table == "dual"
    assert stmt.select_exprs == [ColName("_key")]
    assert stmt.where == ComparisonExpr("like", ColName("_key"), ColName("match:100:*"))


def test_literal_types():
    stmt = parse("SELECT _key WHERE _value > 25 AND _value < 10.5 AND _key = 'a'")
    where = stmt.where
    assert where.right == ComparisonExpr("=", ColName("_key"), SQLVal("a", ValType.STR))
    assert where.left.right.right == SQLVal("10.5", ValType.FLOAT)
    assert where.left.left.right == SQLVal("25", ValType.INT)


def test_not_like_is_null_and_not():
    stmt = parse("SELECT * WHERE _value NOT LIKE 'x' AND _value IS NULL AND NOT (_key = null)")
    assert stmt.select_exprs == [STAR]
    where = stmt.where
    assert where.left.left.operator == "not like"
    assert where.left.right == IsExpr("is null", ColName("_value"))
    assert where.right == NotExpr(ParenExpr(ComparisonExpr("=", ColName("_key"), NullVal())))


def test_qualified_column():
    stmt = parse("SELECT _value ORDER BY _value.address.city DESC")
    item = stmt.order_by[0]
    assert item.direction == "desc"
    assert to_sql(item.expr) == "_value.address.city"


def test_order_direction_default_is_asc():
    stmt = parse("SELECT _key ORDER BY _key")
    assert stmt.order_by[0].direction == "asc"


def test_limit_forms():
    stmt = parse("SELECT _key LIMIT 2, 7")
    assert stmt.limit_offset == SQLVal("2", ValType.INT)
    assert stmt.limit_rowcount == SQLVal("7", ValType.INT)


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT _key WHERE _key like `match:100:*` AND _value = 'test'",
        "SELECT _key WHERE (_key LIKE `t:*`) AND (_value > 10 OR _value < 5)",
        "SELECT _key WHERE _value IS NOT NULL",
    ],
)
def test_where_round_trip(sql):
    where = parse(sql).where
    again = parse("SELECT _key WHERE " + to_sql(where)).where
    assert again == where


def test_to_sql_quotes_identifiers_and_strings():
    assert to_sql(ColName("match:100:*")) == "`match:100:*`"
    assert to_sql(SQLVal("$value > 10")) == "'$value > 10'"
    assert to_sql(AndExpr(ColName("a"), ColName("b"))) == "a and b"


def test_empty_input_error_position():
    with pytest.raises(SQLSyntaxError) as info:
        parse("")
    assert str(info.value) == "syntax error at position 1"


def test_error_near_token():
    with pytest.raises(SQLSyntaxError) as info:
        parse("SELECT _key FROM 123")
    assert str(info.value) == "syntax error at position 21 near '123'"


def test_other_statement_kind():
    assert parse("INSERT INTO t (f) values ('v')") == OtherStatement("Insert")