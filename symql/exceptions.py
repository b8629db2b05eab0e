from typing import Any, Final, Optional

__all__ = (
    "BACKEND_ERROR_CLASSES",
    "BackendError",
    "ConnectionBusy",
    "ConnectionClosed",
    "ConnectionError",
    "ContentionError",
    "ExtraParameterError",
    "MalformedStatement",
    "MissingParameterError",
    "ParameterError",
    "SerializationError",
    "SessionFatal",
    "StatementError",
    "SymqlError",
    "UnencodableValue",
    "UnknownOperator",
    "create_backend_error",
)

BACKEND_ERROR_CLASSES: Final = frozenset({"syntax", "constraint", "contention", "fatal"})


class SymqlError(Exception):
    """Base exception class from which all symql exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``SymqlError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


# -- Compile time errors --
class StatementError(SymqlError):
    """Base class for errors raised while compiling a structured statement.

    These never reach the backend and are not worth retrying.
    """

    statement: Any

    def __init__(self, message: str, statement: Any = None) -> None:
        detail_message = message
        if statement is not None:
            detail_message = f"{message}\nStatement: {statement!r}"
        super().__init__(detail=detail_message)
        self.statement = statement


class MalformedStatement(StatementError):
    """The clause vector violates the structural rules of the statement grammar."""


class UnknownOperator(StatementError):
    """An expression operator is neither in the operator table nor a valid call name."""

    operator: Any

    def __init__(self, message: str, statement: Any = None, operator: Any = None) -> None:
        super().__init__(message, statement)
        self.operator = operator


class SerializationError(SymqlError):
    """Encoding or decoding of an object failed."""


class UnencodableValue(SerializationError):
    """A value has no printed form that reads back as an equal value."""

    value: Any

    def __init__(self, message: str, value: Any = None) -> None:
        super().__init__(detail=message)
        self.value = value


# -- Template argument errors --
class ParameterError(SymqlError):
    """Base class for template argument errors."""

    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        """Initialize with optional SQL context."""
        detail_message = message
        if sql:
            detail_message = f"{message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.sql = sql


class MissingParameterError(ParameterError):
    """Raised when fewer arguments are given than the statement declares slots."""


class ExtraParameterError(ParameterError):
    """Raised when more arguments are given than the statement declares slots."""


# -- Session errors --
class ConnectionError(SymqlError):  # noqa: A001
    """The backend session could not be established."""


class ConnectionClosed(SymqlError):
    """The connection is closed, or was closed while a request was pending."""


class ConnectionBusy(SymqlError):
    """A request was issued while another one is in flight on the same connection."""


class BackendError(SymqlError):
    """The backend rejected a statement.

    The connection stays usable unless the error is a :class:`SessionFatal`.
    """

    error_class: str = "syntax"
    backend_message: str
    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None, error_class: Optional[str] = None) -> None:
        if error_class is not None:
            self.error_class = error_class
        detail_message = f"[{self.error_class}] {message}"
        if sql:
            detail_message = f"{detail_message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.backend_message = message
        self.sql = sql


class ContentionError(BackendError):
    """The backend reported a lock or busy condition; the caller may retry."""

    error_class = "contention"


class SessionFatal(BackendError):
    """The backend session is no longer usable; the connection must be reopened."""

    error_class = "fatal"


def create_backend_error(error_class: str, message: str, sql: Optional[str] = None) -> BackendError:
    """Build the typed exception for a backend error reply.

    Args:
        error_class: One of ``syntax``, ``constraint``, ``contention`` or ``fatal``.
        message: The backend's error message.
        sql: The SQL text that was sent.

    Returns:
        The matching :class:`BackendError` instance.
    """
    if error_class == "contention":
        return ContentionError(message, sql)
    if error_class == "fatal":
        return SessionFatal(message, sql)
    if error_class not in BACKEND_ERROR_CLASSES:
        error_class = "syntax"
    return BackendError(message, sql, error_class=error_class)
