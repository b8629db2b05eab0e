"""symql: structured, symbolic SQL statements compiled, cached and executed."""

from typing import Any

from symql import adapters, codec, core, driver, exceptions, utils
from symql.__metadata__ import __version__
from symql.config import ConnectionConfig, load_config_from_env
from symql.core import (
    CacheStats,
    CompiledStatement,
    Dialect,
    StatementCache,
    StatementCompiler,
    format_statement,
    get_statement_cache,
    reset_statement_cache,
)
from symql.driver import (
    BackendProtocol,
    Connection,
    ConnectionState,
    close_all,
    connect,
    get_backend,
    live_connections,
    register_backend,
    registered_backends,
)
from symql.exceptions import (
    BackendError,
    ConnectionBusy,
    ConnectionClosed,
    ConnectionError,  # noqa: A004
    ContentionError,
    MalformedStatement,
    ParameterError,
    SerializationError,
    SessionFatal,
    StatementError,
    SymqlError,
    UnencodableValue,
    UnknownOperator,
)


def quote(value: Any) -> "tuple[str, Any]":
    """Mark ``value`` as a literal inside a statement.

    >>> quote("name")
    ('quote', 'name')
    """
    return ("quote", value)


__all__ = (
    "BackendError",
    "BackendProtocol",
    "CacheStats",
    "CompiledStatement",
    "Connection",
    "ConnectionBusy",
    "ConnectionClosed",
    "ConnectionConfig",
    "ConnectionError",
    "ConnectionState",
    "ContentionError",
    "Dialect",
    "MalformedStatement",
    "ParameterError",
    "SerializationError",
    "SessionFatal",
    "StatementCache",
    "StatementCompiler",
    "StatementError",
    "SymqlError",
    "UnencodableValue",
    "UnknownOperator",
    "__version__",
    "adapters",
    "close_all",
    "codec",
    "connect",
    "core",
    "driver",
    "exceptions",
    "format_statement",
    "get_backend",
    "get_statement_cache",
    "live_connections",
    "load_config_from_env",
    "quote",
    "register_backend",
    "registered_backends",
    "reset_statement_cache",
    "utils",
)
