"""Line protocol between :class:`ProcessBackend` and its worker.

Every message is UTF-8 text, one item per line, in printed form:

- startup: the backend sends the session options as a printed ``dict``
- request: printed ``(sql, parameters)`` tuple
- reply: one printed tuple per row, then the end-of-reply marker ``#``
- error reply: ``!`` followed by a printed ``(error_class, message)`` tuple,
  then ``#``

Printed values never contain a raw newline, so a line is always one item.
"""

import math
from collections.abc import Sequence
from typing import Any, Final

from symql.codec import from_readable
from symql.driver._common import Reply
from symql.exceptions import SerializationError

__all__ = (
    "END_OF_REPLY",
    "ERROR_PREFIX",
    "decode_request",
    "encode_reply",
    "encode_request",
    "parse_reply_lines",
    "print_row",
)

END_OF_REPLY: Final = "#"
ERROR_PREFIX: Final = "!"


def encode_request(sql: str, parameters: "Sequence[Any]") -> bytes:
    return (repr((sql, tuple(parameters))) + "\n").encode("utf-8")


def decode_request(line: str) -> "tuple[str, tuple[Any, ...]]":
    """Parse one request line.

    Raises:
        SerializationError: If the line is not a printed ``(sql, parameters)`` tuple.
    """
    request = from_readable(line)
    if (
        not isinstance(request, tuple)
        or len(request) != 2  # noqa: PLR2004
        or not isinstance(request[0], str)
        or not isinstance(request[1], tuple)
    ):
        msg = f"Request must be a printed (sql, parameters) tuple, got {line!r}"
        raise SerializationError(msg)
    return request


def _print_value(value: Any) -> str:
    if isinstance(value, float) and math.isinf(value):
        return "1e999" if value > 0 else "-1e999"
    return repr(value)


def print_row(row: "Sequence[Any]") -> str:
    return "(" + "".join(f"{_print_value(value)}, " for value in row) + ")"


def encode_reply(reply: Reply) -> bytes:
    if reply.error_class is not None:
        lines = [ERROR_PREFIX + repr((reply.error_class, reply.message))]
    else:
        lines = [print_row(row) for row in reply.rows]
    lines.append(END_OF_REPLY)
    return ("\n".join(lines) + "\n").encode("utf-8")


def parse_reply_lines(lines: "Sequence[str]", sql: "str | None" = None) -> Reply:
    """Build a :class:`Reply` from the lines received before the end marker.

    Raises:
        SerializationError: If a line is neither a printed row nor an error form.
    """
    rows: list[tuple[Any, ...]] = []
    for line in lines:
        if line.startswith(ERROR_PREFIX):
            error = from_readable(line[len(ERROR_PREFIX) :])
            if not isinstance(error, tuple) or len(error) != 2:  # noqa: PLR2004
                msg = f"Malformed error reply {line!r}"
                raise SerializationError(msg)
            error_class, message = error
            return Reply.failure(str(error_class), str(message), sql)
        row = from_readable(line)
        if not isinstance(row, tuple):
            msg = f"Malformed row {line!r}"
            raise SerializationError(msg)
        rows.append(row)
    return Reply(rows, sql=sql)
