"""Backend capability interface shared by every adapter.

A backend owns one session with a database engine. The connection layer
drives it through a fixed set of operations::

    backend.open(config)
    backend.send(sql, parameters)
    while not backend.ready():
        backend.wait(timeout)
    rows = backend.parse_reply()
    backend.close()

Behaviour common to several adapters lives in small helpers
(:class:`Reply`) that adapters compose rather than inherit.
"""

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Final, Optional, Protocol, Union, runtime_checkable

from typing_extensions import TypeAlias

from symql.exceptions import SymqlError, create_backend_error
from symql.utils.logging import get_logger
from symql.utils.module_loader import import_string

if TYPE_CHECKING:
    from symql.config import ConnectionConfig
    from symql.core.dialect import Dialect

__all__ = (
    "BackendFactory",
    "BackendProtocol",
    "ReconnectableBackend",
    "Reply",
    "Row",
    "get_backend",
    "register_backend",
    "registered_backends",
)

logger = get_logger("symql.driver")

Row: TypeAlias = "tuple[Any, ...]"


@runtime_checkable
class BackendProtocol(Protocol):
    """Operations a backend adapter must provide.

    Attributes:
        dialect: Identifier rules, including the backend's reserved words.
        supports_parameters: Whether ``send`` accepts a separate parameter
            sequence for ``?`` placeholders. When false, the connection
            inlines every value into the SQL text.
    """

    dialect: "Dialect"
    supports_parameters: bool

    def open(self, config: "ConnectionConfig") -> None:
        """Establish the session. Raises :class:`~symql.exceptions.ConnectionError`."""
        ...

    def session_statements(self, config: "ConnectionConfig") -> "list[str]":
        """SQL run once after :meth:`open` to apply ``config``."""
        ...

    def send(self, sql: str, parameters: "Sequence[Any]") -> None:
        """Send one request; the reply is collected with :meth:`parse_reply`."""
        ...

    def ready(self) -> bool:
        """Whether a complete reply is available without blocking."""
        ...

    def wait(self, timeout: float) -> None:
        """Block up to ``timeout`` seconds for more reply data."""
        ...

    def parse_reply(self) -> "list[Row]":
        """Consume the available reply as rows of raw column values.

        Raises:
            BackendError: The backend answered with an error reply.
        """
        ...

    def close(self) -> None:
        """Release the session. Must tolerate being called more than once."""
        ...


@runtime_checkable
class ReconnectableBackend(BackendProtocol, Protocol):
    """A backend that can re-establish a closed or broken session."""

    def reconnect(self, config: "ConnectionConfig") -> None: ...


class Reply:
    """A complete backend reply: rows, or an error with its class."""

    __slots__ = ("error_class", "message", "rows", "sql")

    def __init__(
        self,
        rows: "Optional[list[Row]]" = None,
        *,
        error_class: Optional[str] = None,
        message: str = "",
        sql: Optional[str] = None,
    ) -> None:
        self.rows = rows or []
        self.error_class = error_class
        self.message = message
        self.sql = sql

    @classmethod
    def failure(cls, error_class: str, message: str, sql: Optional[str] = None) -> "Reply":
        return cls(error_class=error_class, message=message, sql=sql)

    @property
    def is_error(self) -> bool:
        return self.error_class is not None

    def rows_or_raise(self) -> "list[Row]":
        """Return the rows, or raise the typed exception for an error reply."""
        if self.error_class is not None:
            raise create_backend_error(self.error_class, self.message, self.sql)
        return self.rows

    def __repr__(self) -> str:
        if self.error_class is not None:
            return f"Reply(error_class={self.error_class!r}, message={self.message!r})"
        return f"Reply(rows={len(self.rows)})"


BackendFactory: TypeAlias = Callable[..., BackendProtocol]

_BACKENDS: dict[str, Union[BackendFactory, str]] = {}
_BUILTIN_BACKENDS: Final = {
    "sqlite": "symql.adapters.sqlite:SqliteBackend",
    "sqlite-process": "symql.adapters.process:ProcessBackend",
}
_BACKENDS.update(_BUILTIN_BACKENDS)


def register_backend(name: str, factory: "Union[BackendFactory, str]", *, replace: bool = False) -> None:
    """Register a backend factory under ``name``.

    Args:
        name: Name passed to :func:`symql.connect`.
        factory: Callable returning a backend, or a ``module:attribute`` path to one.
        replace: Allow overriding an existing registration.

    Raises:
        SymqlError: If ``name`` is taken and ``replace`` is false.
    """
    if name in _BACKENDS and not replace:
        msg = f"Backend {name!r} is already registered"
        raise SymqlError(msg)
    _BACKENDS[name] = factory
    logger.debug("Registered backend %r", name)


def registered_backends() -> "tuple[str, ...]":
    return tuple(sorted(_BACKENDS))


def get_backend(name: str, **options: Any) -> BackendProtocol:
    """Instantiate the backend registered under ``name``.

    Raises:
        SymqlError: If no backend is registered under ``name`` or the factory
            does not satisfy :class:`BackendProtocol`.
    """
    try:
        factory = _BACKENDS[name]
    except KeyError:
        msg = f"Unknown backend {name!r}; registered backends: {', '.join(registered_backends())}"
        raise SymqlError(msg) from None
    if isinstance(factory, str):
        factory = import_string(factory)
        _BACKENDS[name] = factory
    backend = factory(**options)
    if not isinstance(backend, BackendProtocol):
        msg = f"Backend {name!r} does not implement the backend capability interface"
        raise SymqlError(msg)
    return backend
