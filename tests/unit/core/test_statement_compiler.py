"""Tests for statement compilation and argument binding."""

from typing import Any

import pytest

from symql.core.cache import StatementCache
from symql.core.compiler import BoundStatement, CompiledStatement, StatementCompiler, format_statement
from symql.core.dialect import Dialect
from symql.exceptions import ExtraParameterError, MalformedStatement, MissingParameterError, ParameterError

SELECT_BY_SALARY = [":select", ["name", "id"], ":from", "people", ":where", (">", "salary", "$s1")]


def test_create_table_with_column_options(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":create-table", "people", [["name", ("id", ":primary"), ("salary", ":type", "float")]]])
    assert compiled.sql == "CREATE TABLE people (name, id PRIMARY KEY, salary REAL)"
    assert compiled.slot_count == 0


def test_select_with_scalar_slot(compiler: StatementCompiler) -> None:
    compiled = compiler.compile(SELECT_BY_SALARY)
    assert compiled.sql == "SELECT name, id FROM people WHERE salary > $s1"
    assert compiler.bind(compiled, (62000,)) == BoundStatement("SELECT name, id FROM people WHERE salary > ?", (62000,))


def test_same_shape_reuses_compiled_statement(compiler: StatementCompiler, statement_cache: StatementCache) -> None:
    """Calls differing only in their arguments share one compiled statement."""
    first = compiler.compile(SELECT_BY_SALARY)
    second = compiler.compile(list(SELECT_BY_SALARY))
    assert second is first
    assert statement_cache.stats.misses == 1
    assert statement_cache.stats.hits == 1

    low = compiler.bind(second, (50000,))
    high = compiler.bind(first, (62000,))
    assert low.sql == high.sql
    assert low.parameters == (50000,)


def test_format_inlines_arguments(compiler: StatementCompiler) -> None:
    assert compiler.format(SELECT_BY_SALARY, 62000) == "SELECT name, id FROM people WHERE salary > 62000"
    assert (
        compiler.format([":select", "*", ":from", "people", ":where", ("=", "name", "$s1")], "Jeff")
        == "SELECT * FROM people WHERE name = '''Jeff'''"
    )


def test_format_statement_without_connection() -> None:
    assert format_statement([":select", "*", ":from", "people", ":where", ("=", "id", "$s1")], 5) == (
        "SELECT * FROM people WHERE id = 5"
    )


@pytest.mark.parametrize(
    ("statement", "sql"),
    [
        ([":select", "*", ":from", "people"], "SELECT * FROM people"),
        ([":select", 1], "SELECT 1"),
        ([":select", ["order"], ":from", "t"], 'SELECT "order" FROM t'),
        ([":select", ":distinct", ["name"], ":from", "people"], "SELECT DISTINCT name FROM people"),
        (
            [":select", "*", ":from", "people", ":order-by", [("desc", "salary"), "name"], ":limit", 10],
            "SELECT * FROM people ORDER BY salary DESC, name LIMIT 10",
        ),
        (
            [":select", ["dept", ("count", "*")], ":from", "people", ":group-by", ["dept"]],
            "SELECT dept, COUNT(*) FROM people GROUP BY dept",
        ),
        ([":select", "*", ":from", [":select", "id", ":from", "t"]], "SELECT * FROM (SELECT id FROM t)"),
        (
            [":select", "people:name", ":from", "people", ":inner-join", "depts", ":on", ("=", "people:dept", "depts:id")],
            "SELECT people.name FROM people INNER JOIN depts ON people.dept = depts.id",
        ),
        (
            [":update", "people", ":set", [("=", "salary", 1)], ":where", ("=", "id", "$s1")],
            "UPDATE people SET salary = 1 WHERE id = $s1",
        ),
        ([":delete", ":from", "people", ":where", ("=", "id", 1)], "DELETE FROM people WHERE id = 1"),
        ([":drop-table", ":if-exists", "people"], "DROP TABLE IF EXISTS people"),
        ([":begin"], "BEGIN"),
    ],
)
def test_compile_statements(compiler: StatementCompiler, statement: Any, sql: str) -> None:
    assert compiler.compile(statement).sql == sql


def test_values_clause_forms(compiler: StatementCompiler) -> None:
    assert (
        compiler.compile([":insert", ":into", "people", ":values", [("quote", "Jeff"), 1000, 60000.0]]).sql
        == "INSERT INTO people VALUES ('''Jeff''', 1000, 60000.0)"
    )
    assert compiler.compile([":insert", ":into", "t", ":values", [[1, 2], [3, 4]]]).sql == "INSERT INTO t VALUES (1, 2), (3, 4)"
    assert (
        compiler.compile([":insert", ":into", "people", ["name", "id"], ":values", "$v1"]).sql
        == "INSERT INTO people (name, id) VALUES $v1"
    )


def test_values_row_strings_are_values(compiler: StatementCompiler) -> None:
    """Strings in a literal VALUES row are encoded, never read as columns."""
    compiled = compiler.compile([":insert-into", "people", ":values", ["Jeff", 1, None, ("+", 1, 2), "$s1"]])
    assert compiled.sql == "INSERT INTO people VALUES ('''Jeff''', 1, NULL, 1 + 2, $s1)"
    assert compiler.format([":insert-into", "people", ":values", [["Jeff", 1], ["Susan", 2]]]) == (
        "INSERT INTO people VALUES ('''Jeff''', 1), ('''Susan''', 2)"
    )


def test_values_slot_binds_several_rows(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":insert", ":into", "people", ":values", "$v1"])
    bound = compiler.bind(compiled, ([["Jeff", 1000, 60000.0], ["Susan", 1001, None]],))
    assert bound.sql == "INSERT INTO people VALUES (?, ?, ?), (?, ?, ?)"
    assert bound.parameters == ("'Jeff'", 1000, 60000.0, "'Susan'", 1001, None)

    single = compiler.bind(compiled, (("Jeff", 1000, 60000.0),))
    assert single.sql == "INSERT INTO people VALUES (?, ?, ?)"


def test_vector_slot_in_membership(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":select", "*", ":from", "people", ":where", ("in", "id", "$v1")])
    bound = compiler.bind(compiled, ([1, 2, 3],))
    assert bound == BoundStatement("SELECT * FROM people WHERE id IN (?, ?, ?)", (1, 2, 3))
    assert compiler.bind(compiled, ([1, 2, 3],), parameterized=False).sql == "SELECT * FROM people WHERE id IN (1, 2, 3)"


@pytest.mark.parametrize(("invalid",), [(5,), ([],), ("ab",)])
def test_vector_slot_rejects_non_vectors(compiler: StatementCompiler, invalid: Any) -> None:
    compiled = compiler.compile([":select", "*", ":from", "t", ":where", ("in", "id", "$v1")])
    with pytest.raises(ParameterError):
        compiler.bind(compiled, (invalid,))


def test_identifier_slot(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":select", "*", ":from", "$i1"])
    assert compiler.bind(compiled, ("people",)).sql == "SELECT * FROM people"
    assert compiler.bind(compiled, ("order",)).sql == 'SELECT * FROM "order"'
    with pytest.raises(ParameterError):
        compiler.bind(compiled, ("people; DROP TABLE people",))


def test_schema_slot(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":create-table", "$i1", "$S2"])
    bound = compiler.bind(compiled, ("people", [["name", ("id", ":primary")]]))
    assert bound == BoundStatement("CREATE TABLE people (name, id PRIMARY KEY)", ())
    with pytest.raises(ParameterError):
        compiler.bind(compiled, ("people", ["name"]))
    with pytest.raises(ParameterError):
        compiler.bind(compiled, ("people", [[("id", ":default", "$s1")]]))


def test_pattern_slot_binds_text(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":select", "*", ":from", "people", ":where", ("like", "name", "$s1")])
    assert compiler.bind(compiled, ("%Jeff%",)).parameters == ("%Jeff%",)
    assert compiler.bind(compiled, ("%Jeff%",), parameterized=False).sql == "SELECT * FROM people WHERE name LIKE '%Jeff%'"
    assert compiler.bind(compiled, (10,)).parameters == ("10",)


def test_argument_count_is_checked(compiler: StatementCompiler) -> None:
    compiled = compiler.compile(SELECT_BY_SALARY)
    with pytest.raises(MissingParameterError):
        compiler.bind(compiled, ())
    with pytest.raises(ExtraParameterError):
        compiler.bind(compiled, (1, 2))


def test_repeated_slot_index_binds_one_argument(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":select", "*", ":from", "t", ":where", ("or", ("=", "a", "$s1"), ("=", "b", "$s1"))])
    assert compiled.slot_count == 1
    assert compiler.bind(compiled, (7,)).parameters == (7, 7)


def test_conflicting_slot_kinds_are_rejected(compiler: StatementCompiler) -> None:
    with pytest.raises(MalformedStatement):
        compiler.compile([":select", "*", ":from", "$i1", ":where", ("=", "a", "$s1")])


def test_schema_constraints(compiler: StatementCompiler) -> None:
    schema = [
        [
            ("id", ":type", "integer", ":primary-key", ":autoincrement"),
            ("name", ":type", "text", ":not-null", ":unique"),
            ("dept", ":references", "depts", ["id"]),
            ("age", ":default", 0, ":check", (">", "age", 0)),
        ],
        (":unique", ["name", "dept"]),
        (":foreign-key", ["dept"], ":references", "depts", ["id"], ":on-delete", ":cascade"),
    ]
    assert compiler.compile([":create-table", ":if-not-exists", "staff", schema]).sql == (
        "CREATE TABLE IF NOT EXISTS staff ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT NOT NULL UNIQUE, "
        "dept REFERENCES depts (id), "
        "age DEFAULT 0 CHECK (age > 0), "
        "UNIQUE (name, dept), "
        "FOREIGN KEY (dept) REFERENCES depts (id) ON DELETE CASCADE)"
    )


def test_table_level_primary_key_and_check(compiler: StatementCompiler) -> None:
    compiled = compiler.compile([":create-table", "pairs", [["a", "b"], (":primary-key", ["a", "b"]), (":check", ("<", "a", "b"))]])
    assert compiled.sql == "CREATE TABLE pairs (a, b, PRIMARY KEY (a, b), CHECK (a < b))"


@pytest.mark.parametrize(
    "statement",
    [
        [],
        ["people"],
        [":select", "Jeff Smith"],
        [":select", "*", ":from", "people", ":where", []],
        [":insert", ":into", "people", ":values", "people"],
        [":insert", ":into", "people", ":values", 5],
        [":insert", ":into", "people", ":values", "$s1"],
        [":insert", ":into", "people", ":values", [[1], 2]],
        [":create-table", "t", [[("id", ":type", "varchar")]]],
        [":create-table", "t", [[("id", ":bogus")]]],
        [":create-table", "t", [[("id", ":default")]]],
        [":create-table", "t", [["id"], (":foreign-key", ["id"], "depts")]],
        [":create-table", "t", [["id"], (":foreign-key", ["id"], ":references", "d", ":on-delete", ":explode")]],
        [":create-table", "t", [["id"], ("unique", ["id"])]],
    ],
)
def test_malformed_statements(compiler: StatementCompiler, statement: Any) -> None:
    with pytest.raises(MalformedStatement):
        compiler.compile(statement)


@pytest.mark.parametrize("statement", [[":select", "$s2"], [":select", ["$s1", "$s3"]], [":select", "$s1", ":from", "$i3"]])
def test_slot_indices_must_not_skip(compiler: StatementCompiler, statement: Any) -> None:
    """A skipped slot index would silently ignore its argument."""
    with pytest.raises(MalformedStatement, match="without gaps"):
        compiler.compile(statement)


def test_malformed_statement_is_not_cached(compiler: StatementCompiler, statement_cache: StatementCache) -> None:
    with pytest.raises(MalformedStatement):
        compiler.compile([":select", "Jeff Smith"])
    assert len(statement_cache) == 0


def test_compiled_statement_equality() -> None:
    dialect = Dialect("sqlite")
    first = StatementCompiler(dialect).compile(SELECT_BY_SALARY)
    second = StatementCompiler(dialect).compile(SELECT_BY_SALARY)
    assert first is not second
    assert first == second
    assert hash(first) == hash(second)
    assert isinstance(first, CompiledStatement)
    assert first.slot_kinds == {1: first.slots[0].kind}
