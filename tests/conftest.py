from collections.abc import Generator
from pathlib import Path

import pytest

from symql.core.cache import StatementCache
from symql.core.compiler import StatementCompiler
from symql.core.dialect import Dialect
from symql.driver.connection import Connection, connect

here = Path(__file__).parent
root_path = here.parent


@pytest.fixture
def statement_cache() -> StatementCache:
    return StatementCache()


@pytest.fixture
def dialect() -> Dialect:
    return Dialect("sqlite", frozenset({"order", "group", "select", "values"}))


@pytest.fixture
def compiler(dialect: Dialect, statement_cache: StatementCache) -> StatementCompiler:
    return StatementCompiler(dialect, statement_cache)


@pytest.fixture
def sqlite_connection(statement_cache: StatementCache) -> Generator[Connection, None, None]:
    connection = connect("sqlite", database=":memory:", cache=statement_cache)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def people(sqlite_connection: Connection) -> Connection:
    """In-memory connection with an empty ``people`` table."""
    sqlite_connection.execute([":create-table", "people", [["name", ("id", ":primary"), ("salary", ":type", "float")]]])
    return sqlite_connection
