import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from symql.adapters.sqlite.core import SQLITE_DIALECT, build_session_statements, open_connection, run_statement
from symql.exceptions import ConnectionError, SessionFatal, SymqlError  # noqa: A004
from symql.utils.logging import get_logger

if TYPE_CHECKING:
    from symql.config import ConnectionConfig
    from symql.core.dialect import Dialect
    from symql.driver._common import Reply

__all__ = ("SqliteBackend",)

logger = get_logger("symql.adapters.sqlite")


class SqliteBackend:
    """In-process SQLite session through the standard library driver.

    Each request completes inside :meth:`send`, so the reply is always
    ready when the connection asks for it.
    """

    dialect: "ClassVar[Dialect]" = SQLITE_DIALECT
    supports_parameters: ClassVar[bool] = True

    def __init__(self, database: str = ":memory:") -> None:
        self.database = database
        self._connection: Optional[sqlite3.Connection] = None
        self._reply: "Optional[Reply]" = None

    def __repr__(self) -> str:
        return f"SqliteBackend({self.database!r})"

    def open(self, config: "ConnectionConfig") -> None:
        try:
            self._connection = open_connection(self.database, autocommit=config.autocommit, timeout=config.busy_timeout)
        except sqlite3.Error as exc:
            msg = f"Could not open SQLite database {self.database!r}: {exc}"
            raise ConnectionError(msg) from exc
        logger.debug("Opened SQLite database %s", self.database)

    def session_statements(self, config: "ConnectionConfig") -> "list[str]":
        return build_session_statements(config)

    def send(self, sql: str, parameters: "Sequence[Any]") -> None:
        if self._connection is None:
            msg = "SQLite session is not open"
            raise SessionFatal(msg, sql)
        self._reply = run_statement(self._connection, sql, parameters)

    def ready(self) -> bool:
        return self._reply is not None

    def wait(self, timeout: float) -> None:
        if self._connection is None:
            msg = "SQLite session is not open"
            raise SessionFatal(msg)

    def parse_reply(self) -> "list[tuple[Any, ...]]":
        reply, self._reply = self._reply, None
        if reply is None:
            msg = "No reply is pending"
            raise SymqlError(msg)
        return reply.rows_or_raise()

    def close(self) -> None:
        connection, self._connection = self._connection, None
        self._reply = None
        if connection is not None:
            connection.close()
            logger.debug("Closed SQLite database %s", self.database)

    def reconnect(self, config: "ConnectionConfig") -> None:
        """Close and reopen the database. An in-memory database starts empty again."""
        self.close()
        self.open(config)
