"""Connection layer and backend capability interface."""

from symql.driver._common import (
    BackendFactory,
    BackendProtocol,
    ReconnectableBackend,
    Reply,
    get_backend,
    register_backend,
    registered_backends,
)
from symql.driver.connection import Connection, ConnectionState, close_all, connect, live_connections

__all__ = (
    "BackendFactory",
    "BackendProtocol",
    "Connection",
    "ConnectionState",
    "ReconnectableBackend",
    "Reply",
    "close_all",
    "connect",
    "get_backend",
    "live_connections",
    "register_backend",
    "registered_backends",
)
