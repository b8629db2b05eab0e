"""Worker process serving one SQLite session over stdin and stdout.

Started by :class:`~symql.adapters.process.ProcessBackend` as
``python -m symql.adapters.process.worker``. Nothing but protocol
messages may be written to stdout.
"""

import sqlite3
import sys
from typing import BinaryIO

from symql.adapters.process.protocol import decode_request, encode_reply
from symql.adapters.sqlite.core import classify_error, open_connection, run_statement
from symql.codec import from_readable
from symql.driver._common import Reply
from symql.exceptions import SerializationError

__all__ = ("main", "serve")


def _write(stdout: BinaryIO, reply: Reply) -> None:
    stdout.write(encode_reply(reply))
    stdout.flush()


def serve(stdin: BinaryIO, stdout: BinaryIO) -> int:
    """Answer requests until stdin closes or the session fails.

    Returns:
        The process exit code.
    """
    try:
        options = from_readable(stdin.readline().decode("utf-8"))
        database = str(options["database"])
        connection = open_connection(
            database, autocommit=bool(options.get("autocommit", True)), timeout=float(options.get("timeout", 5.0))
        )
    except sqlite3.Error as exc:
        _write(stdout, Reply.failure("fatal", f"{classify_error(exc)}: {exc}"))
        return 1
    except (SerializationError, KeyError, TypeError, ValueError, AttributeError) as exc:
        _write(stdout, Reply.failure("fatal", f"Invalid session options: {exc}"))
        return 1
    _write(stdout, Reply())
    try:
        for raw in stdin:
            try:
                sql, parameters = decode_request(raw.decode("utf-8"))
            except (SerializationError, UnicodeDecodeError) as exc:
                _write(stdout, Reply.failure("syntax", f"Malformed request: {exc}"))
                continue
            reply = run_statement(connection, sql, parameters)
            _write(stdout, reply)
            if reply.error_class == "fatal":
                return 1
    finally:
        connection.close()
    return 0


def main() -> int:
    return serve(sys.stdin.buffer, sys.stdout.buffer)


if __name__ == "__main__":
    sys.exit(main())
