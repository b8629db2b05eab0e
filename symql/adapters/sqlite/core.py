"""SQLite helpers shared by the in-process and the out-of-process backend."""

import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Final, Optional

from symql.core.dialect import Dialect
from symql.driver._common import Reply

if TYPE_CHECKING:
    from symql.config import ConnectionConfig

__all__ = (
    "SQLITE_DIALECT",
    "SQLITE_KEYWORDS",
    "build_session_statements",
    "classify_error",
    "open_connection",
    "run_statement",
)

SQLITE_CONSTRAINT_CODE = 19
SQLITE_MISMATCH_CODE = 20
SQLITE_BUSY_CODE = 5
SQLITE_LOCKED_CODE = 6
SQLITE_NOMEM_CODE = 7
SQLITE_IOERR_CODE = 10
SQLITE_CORRUPT_CODE = 11
SQLITE_FULL_CODE = 13
SQLITE_CANTOPEN_CODE = 14
SQLITE_NOTADB_CODE = 26

_CONSTRAINT_CODES: Final = frozenset({SQLITE_CONSTRAINT_CODE, SQLITE_MISMATCH_CODE})
_CONTENTION_CODES: Final = frozenset({SQLITE_BUSY_CODE, SQLITE_LOCKED_CODE})
_FATAL_CODES: Final = frozenset({
    SQLITE_NOMEM_CODE,
    SQLITE_IOERR_CODE,
    SQLITE_CORRUPT_CODE,
    SQLITE_FULL_CODE,
    SQLITE_CANTOPEN_CODE,
    SQLITE_NOTADB_CODE,
})

SQLITE_KEYWORDS: Final = frozenset(
    """
    abort action add after all alter always analyze and as asc attach autoincrement before begin between by
    cascade case cast check collate column commit conflict constraint create cross current current_date
    current_time current_timestamp database default deferrable deferred delete desc detach distinct do drop
    each else end escape except exclude exclusive exists explain fail filter first following for foreign from
    full generated glob group groups having if ignore immediate in index indexed initially inner insert instead
    intersect into is isnull join key last left like limit match materialized natural no not nothing notnull
    null nulls of offset on or order others outer over partition plan pragma preceding primary query raise
    range recursive references regexp reindex release rename replace restrict returning right rollback row
    rows savepoint select set table temp temporary then ties to transaction trigger unbounded union unique
    update using vacuum values view virtual when where window with without
    """.split()
)

SQLITE_DIALECT: Final = Dialect("sqlite", SQLITE_KEYWORDS)


def classify_error(error: sqlite3.Error) -> str:
    """Map a SQLite error onto ``syntax``, ``constraint``, ``contention`` or ``fatal``.

    Uses the extended result code where the driver exposes one and falls
    back to the exception type and message otherwise.
    """
    code: Optional[int] = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        primary = code & 0xFF
        if primary in _CONSTRAINT_CODES:
            return "constraint"
        if primary in _CONTENTION_CODES:
            return "contention"
        if primary in _FATAL_CODES:
            return "fatal"
    if isinstance(error, sqlite3.IntegrityError):
        return "constraint"
    message = str(error).lower()
    if "locked" in message or "busy" in message:
        return "contention"
    if isinstance(error, sqlite3.ProgrammingError) and "closed" in message:
        return "fatal"
    if "not a database" in message or "disk i/o" in message or "unable to open" in message:
        return "fatal"
    return "syntax"


def open_connection(database: str, *, autocommit: bool = True, timeout: float = 5.0) -> sqlite3.Connection:
    """Open a SQLite connection.

    ``file:`` paths are opened in URI mode. Autocommit leaves transaction
    control to explicit ``BEGIN`` and ``COMMIT`` statements.
    """
    return sqlite3.connect(
        database,
        timeout=timeout,
        isolation_level=None if autocommit else "DEFERRED",
        check_same_thread=False,
        uri=database.startswith("file:"),
    )


def build_session_statements(config: "ConnectionConfig") -> "list[str]":
    return [
        f"PRAGMA foreign_keys = {'ON' if config.foreign_keys else 'OFF'}",
        f"PRAGMA read_uncommitted = {'ON' if config.isolation == 'read-uncommitted' else 'OFF'}",
        f"PRAGMA busy_timeout = {int(config.busy_timeout * 1000)}",
    ]


def run_statement(connection: sqlite3.Connection, sql: str, parameters: "Sequence[Any]") -> Reply:
    """Execute one statement and collect its reply."""
    try:
        cursor = connection.execute(sql, tuple(parameters))
        try:
            rows = [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
    except sqlite3.Error as exc:
        return Reply.failure(classify_error(exc), str(exc), sql)
    return Reply(rows, sql=sql)
