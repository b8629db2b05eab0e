"""Value codec.

Values travel to and from the backend in their printed form: the Python
literal notation produced by :func:`repr` and read back with
:func:`ast.literal_eval`. Integers and floats the backend can store natively
skip the printed form and use numeric SQL literals; ``None`` is the only
value that maps to ``NULL``. Integers beyond 64 bits print in parentheses
so numeric column affinity keeps them as text.

Only values whose printed form reads back as an equal value of the same
type are encodable. Runtime objects (open files, locks, class instances
without a literal ``repr``) and non-finite floats raise
:class:`~symql.exceptions.UnencodableValue`.
"""

import ast
import math
from typing import Any, Final, Optional, Union

from symql.exceptions import SerializationError, UnencodableValue

__all__ = (
    "NULL",
    "decode",
    "encode",
    "encode_text",
    "from_column",
    "from_readable",
    "is_native_number",
    "quote_string",
    "to_parameter",
    "to_readable",
)

NULL: Final = "NULL"

_INT64_MIN: Final = -(2**63)
_INT64_MAX: Final = 2**63 - 1

ParameterValue = Union[None, int, float, str]


def is_native_number(value: Any) -> bool:
    """Whether ``value`` is stored as a backend number rather than printed text."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return _INT64_MIN <= value <= _INT64_MAX
    if isinstance(value, float):
        return math.isfinite(value)
    return False


def to_readable(value: Any) -> str:
    """Return the printed form of ``value``.

    Raises:
        UnencodableValue: If the printed form does not read back as an equal value.
    """
    if isinstance(value, float) and not math.isfinite(value):
        msg = f"Non-finite float {value!r} has no readable form"
        raise UnencodableValue(msg, value)
    try:
        text = repr(value)
        parsed = ast.literal_eval(text)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError) as exc:
        msg = f"Value of type {type(value).__name__} has no readable form"
        raise UnencodableValue(msg, value) from exc
    if type(parsed) is not type(value) or parsed != value:
        msg = f"Value of type {type(value).__name__} does not round-trip through its printed form"
        raise UnencodableValue(msg, value)
    if isinstance(value, int) and not isinstance(value, bool) and not is_native_number(value):
        # Bare digits would be coerced to REAL by numeric column affinity.
        return f"({text})"
    return text


def from_readable(text: str) -> Any:
    """Read a value back from its printed form.

    Raises:
        SerializationError: If ``text`` is not a printed value.
    """
    try:
        return ast.literal_eval(text)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError) as exc:
        msg = f"Cannot read value from {text!r}"
        raise SerializationError(msg) from exc


def quote_string(text: str) -> str:
    """Quote ``text`` as a SQL string literal."""
    return "'" + text.replace("'", "''") + "'"


def encode(value: Any) -> str:
    """Encode ``value`` as a SQL literal.

    Examples:
        >>> encode(None)
        'NULL'
        >>> encode(42)
        '42'
        >>> encode("Jeff")
        "'''Jeff'''"
    """
    if value is None:
        return NULL
    if is_native_number(value):
        return repr(value)
    return quote_string(to_readable(value))


def decode(text: str) -> Any:
    """Inverse of :func:`encode`.

    Raises:
        SerializationError: If ``text`` is not a literal produced by :func:`encode`.
    """
    if text == NULL:
        return None
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return from_readable(text[1:-1].replace("''", "'"))
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        msg = f"Cannot decode SQL literal {text!r}"
        raise SerializationError(msg) from exc


def encode_text(value: Any) -> str:
    """Encode a pattern operand as a string literal of its printed text.

    Strings are taken verbatim so callers write patterns against the
    printed form of stored values; every other value, numbers included,
    is printed first.
    """
    if isinstance(value, str):
        return quote_string(value)
    return quote_string(to_readable(value))


def to_parameter(value: Any) -> ParameterValue:
    """Map ``value`` onto the driver parameter channel."""
    if value is None:
        return None
    if is_native_number(value):
        return value  # type: ignore[no-any-return]
    return to_readable(value)


def from_column(raw: Any) -> Optional[Any]:
    """Decode a driver-native column value.

    Text the codec did not write (catalog tables, ``typeof()`` and other
    text-returning functions) is returned as the raw string.

    Examples:
        >>> from_column("'Jeff'")
        'Jeff'
        >>> from_column("people")
        'people'
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, bytes):
        return raw
    try:
        return ast.literal_eval(raw)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
        return raw
