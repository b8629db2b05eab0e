"""Connections: one backend session driven by structured statements.

A :class:`Connection` moves through ``CONNECTING -> READY <-> BUSY -> CLOSED``.
A statement-level backend error passes through ``ERRORED`` and returns to
``READY``; a fatal session error closes the connection.

Connections are owned by the caller and are context managers::

    with connect("sqlite", database=":memory:") as conn:
        conn.execute([":create-table", "people", [["name", "id"]]])

A connection that becomes unreachable without :meth:`Connection.close` is
released by its finalizer and logged as a leak. Release happens exactly
once whichever path runs first.
"""

import contextlib
import logging
import threading
import weakref
from collections.abc import Generator, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from typing_extensions import Self

from symql import codec
from symql.config import ConnectionConfig
from symql.core.cache import get_statement_cache
from symql.core.compiler import StatementCompiler
from symql.driver._common import BackendProtocol, ReconnectableBackend, Row, get_backend
from symql.exceptions import (
    BackendError,
    ConnectionBusy,
    ConnectionClosed,
    ConnectionError,  # noqa: A004
    SessionFatal,
    SymqlError,
)
from symql.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from symql.core.cache import StatementCache
    from symql.core.compiler import CompiledStatement

__all__ = ("Connection", "ConnectionState", "close_all", "connect", "live_connections")

logger = get_logger("symql.driver.connection")

_live_connections: "weakref.WeakSet[Connection]" = weakref.WeakSet()


class ConnectionState(Enum):
    CONNECTING = "connecting"
    READY = "ready"
    BUSY = "busy"
    ERRORED = "errored"
    CLOSED = "closed"


def _release_unreachable(backend: BackendProtocol, description: str) -> None:
    logger.warning("Connection %s was not closed before it became unreachable; releasing its backend", description)
    with contextlib.suppress(Exception):
        backend.close()


class Connection:
    """A session with one backend.

    Args:
        backend: The backend adapter owning the session.
        config: Session settings; defaults to :class:`~symql.config.ConnectionConfig`.
        cache: Statement cache; defaults to the process-wide cache.
    """

    def __init__(
        self,
        backend: BackendProtocol,
        config: Optional[ConnectionConfig] = None,
        *,
        cache: "Optional[StatementCache]" = None,
    ) -> None:
        self._backend = backend
        self.config = config or ConnectionConfig()
        self._state = ConnectionState.CONNECTING
        self._state_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._compiler = StatementCompiler(backend.dialect, cache if cache is not None else get_statement_cache())
        self._finalizer = weakref.finalize(self, _release_unreachable, backend, repr(backend))
        self.last_error: Optional[BackendError] = None

    def __repr__(self) -> str:
        return f"Connection(backend={self._backend!r}, state={self._state.value})"

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    @property
    def backend(self) -> BackendProtocol:
        return self._backend

    def open(self) -> Self:
        """Establish the backend session and apply the session settings.

        Raises:
            ConnectionError: The session could not be established; the
                connection is closed.
        """
        if self._state is not ConnectionState.CONNECTING:
            msg = f"Cannot open a connection in state {self._state.value}"
            raise SymqlError(msg)
        try:
            self._backend.open(self.config)
            self._state = ConnectionState.READY
            self._apply_session_settings()
        except ConnectionError:
            self.close()
            raise
        except SymqlError as exc:
            self.close()
            msg = f"Failed to establish session with {self._backend!r}: {exc}"
            raise ConnectionError(msg) from exc
        _live_connections.add(self)
        log_with_context(
            logger,
            logging.INFO,
            "Connection opened",
            backend=repr(self._backend),
            isolation=self.config.isolation,
            autocommit=self.config.autocommit,
            foreign_keys=self.config.foreign_keys,
        )
        return self

    def _apply_session_settings(self) -> None:
        for sql in self._backend.session_statements(self.config):
            self._request(sql, ())

    def compile(self, statement: "list[Any]", *args: Any) -> str:
        """Return the SQL ``statement`` would run with ``args`` inlined."""
        return self._compiler.format(statement, *args)

    def prepare(self, statement: "list[Any]") -> "CompiledStatement":
        """Compile ``statement`` through the cache without running it."""
        return self._compiler.compile(statement)

    def execute(self, statement: "list[Any]", *args: Any) -> "list[Row]":
        """Run ``statement`` with positional template ``args`` and return its rows.

        Raises:
            ConnectionClosed: The connection is closed, or was closed while waiting.
            ConnectionBusy: Another request is in flight on this connection.
            MalformedStatement: The statement violates the grammar.
            ParameterError: ``args`` do not match the statement's slots.
            BackendError: The backend rejected the statement.
            SessionFatal: The backend session broke; the connection is closed.
        """
        if self.closed:
            msg = "Connection is closed"
            raise ConnectionClosed(msg)
        compiled = self._compiler.compile(statement)
        bound = self._compiler.bind(compiled, args, parameterized=self._backend.supports_parameters)
        return self._request(bound.sql, bound.parameters)

    def _request(self, sql: str, parameters: "Sequence[Any]") -> "list[Row]":
        if not self._request_lock.acquire(blocking=False):
            msg = "A request is already in flight on this connection"
            raise ConnectionBusy(msg)
        try:
            with self._state_lock:
                if self._state is ConnectionState.CLOSED:
                    msg = "Connection is closed"
                    raise ConnectionClosed(msg)
                self._state = ConnectionState.BUSY
            try:
                self._backend.send(sql, parameters)
                self._await_reply()
                rows = self._backend.parse_reply()
            except SessionFatal as exc:
                if self.closed:
                    msg = "Connection was closed while a request was pending"
                    raise ConnectionClosed(msg) from exc
                logger.error("Backend session failed, closing connection: %s", exc.backend_message)
                self._state = ConnectionState.ERRORED
                self.last_error = exc
                self.close()
                raise
            except BackendError as exc:
                log_with_context(
                    logger, logging.WARNING, "Backend rejected statement", error_class=exc.error_class, backend_message=exc.backend_message
                )
                self._state = ConnectionState.ERRORED
                self.last_error = exc
                raise
            return [tuple(codec.from_column(value) for value in row) for row in rows]
        finally:
            with self._state_lock:
                if self._state is not ConnectionState.CLOSED:
                    self._state = ConnectionState.READY
            self._request_lock.release()

    def _await_reply(self) -> None:
        while not self._backend.ready():
            if self.closed:
                msg = "Connection was closed while a request was pending"
                raise ConnectionClosed(msg)
            self._backend.wait(self.config.poll_interval)
        if self.closed:
            msg = "Connection was closed while a request was pending"
            raise ConnectionClosed(msg)

    @contextlib.contextmanager
    def transaction(self) -> "Generator[Connection, None, None]":
        """Run the block inside ``BEGIN`` / ``COMMIT``, rolling back on error."""
        self.execute([":begin"])
        try:
            yield self
        except BaseException:
            if not self.closed:
                self.execute([":rollback"])
            raise
        self.execute([":commit"])

    def close(self) -> None:
        """Close the connection and release the backend. Safe to call repeatedly."""
        with self._state_lock:
            if self._state is ConnectionState.CLOSED:
                return
            self._state = ConnectionState.CLOSED
        _live_connections.discard(self)
        if self._finalizer.detach() is not None:
            self._backend.close()
            logger.info("Connection closed: %r", self._backend)

    def reconnect(self) -> Self:
        """Re-establish the backend session of a closed or broken connection.

        Raises:
            SymqlError: The backend cannot reconnect.
            ConnectionError: The new session could not be established.
        """
        if not isinstance(self._backend, ReconnectableBackend):
            msg = f"Backend {self._backend!r} does not support reconnecting"
            raise SymqlError(msg)
        self.close()
        try:
            self._backend.reconnect(self.config)
        except SymqlError as exc:
            if isinstance(exc, ConnectionError):
                raise
            msg = f"Failed to re-establish session with {self._backend!r}: {exc}"
            raise ConnectionError(msg) from exc
        self._finalizer = weakref.finalize(self, _release_unreachable, self._backend, repr(self._backend))
        with self._state_lock:
            self._state = ConnectionState.READY
        try:
            self._apply_session_settings()
        except SymqlError as exc:
            self.close()
            msg = f"Failed to apply session settings after reconnecting: {exc}"
            raise ConnectionError(msg) from exc
        _live_connections.add(self)
        logger.info("Connection re-established: %r", self._backend)
        return self


def connect(
    backend: Union[str, BackendProtocol] = "sqlite",
    *,
    config: Optional[ConnectionConfig] = None,
    cache: "Optional[StatementCache]" = None,
    **options: Any,
) -> Connection:
    """Open a connection.

    Args:
        backend: A registered backend name or a backend instance.
        config: Session settings.
        cache: Statement cache to use instead of the process-wide one.
        **options: Passed to the backend factory when ``backend`` is a name.

    Raises:
        ConnectionError: The session could not be established.
    """
    if isinstance(backend, str):
        backend = get_backend(backend, **options)
    elif options:
        msg = "Backend options are only accepted together with a backend name"
        raise SymqlError(msg)
    return Connection(backend, config, cache=cache).open()


def live_connections() -> "tuple[Connection, ...]":
    """Open connections that are still reachable, for leak diagnostics."""
    return tuple(_live_connections)


def close_all() -> None:
    """Close every open connection."""
    for connection in live_connections():
        connection.close()
