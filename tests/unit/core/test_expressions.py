"""Tests for the prefix expression compiler."""

from typing import Any

import pytest

from symql.core.compiler import StatementCompiler
from symql.core.dialect import Dialect
from symql.core.expressions import ExpressionCompiler, Operator
from symql.core.tokens import SlotContext
from symql.exceptions import MalformedStatement, UnknownOperator

DIALECT = Dialect("sqlite", frozenset({"order", "group"}))


def render(node: Any) -> str:
    compiler = ExpressionCompiler(DIALECT, StatementCompiler(DIALECT).compile_fragment)
    return compiler.compile(node).text


@pytest.mark.parametrize(
    ("expression", "sql"),
    [
        ((">", "salary", "$s1"), "salary > $s1"),
        (("=", "id", 5), "id = 5"),
        (("!=", "id", None), "id != NULL"),
        (("is", "name", None), "name IS NULL"),
        (("is-not", "name", None), "name IS NOT NULL"),
        (("=", "name", ("quote", "Jeff")), "name = '''Jeff'''"),
        (("and", ("=", "a", 1), ("<", "b", 2)), "(a = 1) AND (b < 2)"),
        (("or", ("=", "a", 1), ("=", "a", 2), ("=", "a", 3)), "(a = 1) OR (a = 2) OR (a = 3)"),
        (("+", "a", "b", "c"), "a + b + c"),
        (("*", ("+", "a", 1), 2), "(a + 1) * 2"),
        (("-", "a"), "-a"),
        (("-", "a", "b"), "a - b"),
        (("/", "a", 2), "a / 2"),
        (("%", "a", 2), "a % 2"),
        (("not", ("=", "a", 1)), "NOT (a = 1)"),
        (("<=", 1, "x", 10), "x BETWEEN 1 AND 10"),
        ((">=", 10, "x", 1), "x BETWEEN 1 AND 10"),
        (("in", "id", [1, 2, 3]), "id IN (1, 2, 3)"),
        (("not-in", "id", "$v1"), "id NOT IN $v1"),
        (("in", "id", [":select", "id", ":from", "t"]), "id IN (SELECT id FROM t)"),
        (("like", "name", ("quote", "%Jeff%")), "name LIKE '%Jeff%'"),
        (("glob", "name", "pattern_column"), "name GLOB pattern_column"),
        (("isnull", "name"), "name ISNULL"),
        (("notnull", "name"), "name NOTNULL"),
        (("desc", "salary"), "salary DESC"),
        (("as", ("max", "salary"), "top"), "MAX(salary) AS top"),
        (("count", "*"), "COUNT(*)"),
        (("random",), "RANDOM()"),
        (("call", "coalesce", "a", 0), "COALESCE(a, 0)"),
        (("group-concat", "name"), "GROUP_CONCAT(name)"),
        (("cast", "x", "integer"), "CAST(x AS INTEGER)"),
        (("exists", [":select", "*", ":from", "t"]), "EXISTS (SELECT * FROM t)"),
        (("not-exists", [":select", "*", ":from", "t"]), "NOT EXISTS (SELECT * FROM t)"),
        (("AND", ("=", "a", 1)), "(a = 1)"),
    ],
)
def test_compile_expression(expression: Any, sql: str) -> None:
    assert render(expression) == sql


def test_identifiers_are_rendered_and_quoted() -> None:
    assert render("people:name") == "people.name"
    assert render("people.name") == "people.name"
    assert render("first-name") == "first_name"
    assert render("order") == '"order"'
    assert render(("=", "t:group", 1)) == 't."group" = 1'


def test_identifier_and_literal_are_distinct() -> None:
    """A bare string is an identifier; a quoted string is a value."""
    assert render(("=", "name", "Jeff")) == "name = Jeff"
    assert render(("=", "name", ("quote", "Jeff"))) == "name = '''Jeff'''"


def test_bare_string_with_spaces_is_rejected() -> None:
    with pytest.raises(MalformedStatement):
        render(("=", "name", "Jeff Smith"))


def test_pattern_slot_is_marked() -> None:
    compiler = ExpressionCompiler(DIALECT, StatementCompiler(DIALECT).compile_fragment)
    fragment = compiler.compile(("like", "name", "$s1"))
    assert fragment.text == "name LIKE $s1"
    assert fragment.slots[0].context is SlotContext.PATTERN


def test_pattern_literal_is_printed_text() -> None:
    assert render(("like", "tags", 10)) == "tags LIKE '10'"


def test_concatenation_is_rejected() -> None:
    with pytest.raises(UnknownOperator) as exc_info:
        render(("||", "a", "b"))
    assert exc_info.value.operator == "||"


@pytest.mark.parametrize("expression", [("$%", 1), ("no such", 1), ("call", 5)])
def test_unknown_operator(expression: Any) -> None:
    with pytest.raises(UnknownOperator):
        render(expression)


@pytest.mark.parametrize(
    "expression",
    [
        ("=", "a"),
        ("=", "a", 1, 2),
        ("not", "a", "b"),
        ("isnull",),
        ("+", "a"),
        ("like", "a"),
        ("in", "id", 5),
        ("in", "id", "$s1"),
        ("exists", "t"),
        ("as", "a", "not an alias"),
        ("cast", "x", 5),
        ("quote",),
        (),
        (5, 1),
        ("=", "a", "$S1"),
        ("=", "a", ":from"),
        ("in", "id", []),
    ],
)
def test_malformed_expressions(expression: Any) -> None:
    with pytest.raises(MalformedStatement):
        render(expression)


def test_operator_lookup() -> None:
    assert Operator.lookup("AND") is Operator.AND
    assert Operator.lookup("not-like") is Operator.NOT_LIKE
    assert Operator.lookup("frobnicate") is None
