import os
import selectors
import subprocess
import sys
import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from symql.adapters.process.protocol import END_OF_REPLY, encode_request, parse_reply_lines
from symql.adapters.sqlite.core import SQLITE_DIALECT, build_session_statements
from symql.exceptions import ConnectionError, SerializationError, SessionFatal, SymqlError  # noqa: A004
from symql.utils.logging import get_logger

if TYPE_CHECKING:
    from symql.config import ConnectionConfig
    from symql.core.dialect import Dialect

__all__ = ("ProcessBackend",)

logger = get_logger("symql.adapters.process")

WORKER_MODULE = "symql.adapters.process.worker"
READ_CHUNK_SIZE = 65536


class ProcessBackend:
    """SQLite session hosted by a worker process and driven over pipes.

    Requests are written to the worker's stdin; replies are read from its
    stdout without blocking, so :meth:`ready` and :meth:`wait` reflect how
    much of the reply has actually arrived.

    Args:
        database: Database path passed to the worker.
        executable: Python interpreter used for the worker.
        startup_timeout: Seconds to wait for the worker to report ready.
    """

    dialect: "ClassVar[Dialect]" = SQLITE_DIALECT
    supports_parameters: ClassVar[bool] = True

    def __init__(
        self, database: str = ":memory:", *, executable: Optional[str] = None, startup_timeout: float = 10.0
    ) -> None:
        self.database = database
        self.executable = executable or sys.executable
        self.startup_timeout = startup_timeout
        self._process: Optional[subprocess.Popen[bytes]] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._buffer = bytearray()
        self._pending: list[str] = []
        self._complete: Optional[list[str]] = None
        self._sql: Optional[str] = None

    def __repr__(self) -> str:
        pid = self._process.pid if self._process is not None else None
        return f"ProcessBackend({self.database!r}, pid={pid})"

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def _worker_environment(self) -> "dict[str, str]":
        env = dict(os.environ)
        package_root = str(Path(__file__).resolve().parents[3])
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = package_root if not existing else os.pathsep.join((package_root, existing))
        return env

    def open(self, config: "ConnectionConfig") -> None:
        try:
            process = subprocess.Popen(  # noqa: S603
                [self.executable, "-m", WORKER_MODULE],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                env=self._worker_environment(),
            )
        except OSError as exc:
            msg = f"Could not start worker process: {exc}"
            raise ConnectionError(msg) from exc
        self._process = process
        self._selector = selectors.DefaultSelector()
        assert process.stdout is not None  # noqa: S101
        self._selector.register(process.stdout, selectors.EVENT_READ)
        options = {"database": self.database, "autocommit": config.autocommit, "timeout": config.busy_timeout}
        try:
            self._write((repr(options) + "\n").encode("utf-8"))
            self._await_startup()
        except SymqlError as exc:
            self.close()
            if isinstance(exc, ConnectionError):
                raise
            msg = f"Worker process failed to start: {exc}"
            raise ConnectionError(msg) from exc
        logger.debug("Started worker process %s for %s", process.pid, self.database)

    def _await_startup(self) -> None:
        deadline = time.monotonic() + self.startup_timeout
        while not self.ready():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                msg = f"Worker process did not start within {self.startup_timeout} seconds"
                raise ConnectionError(msg)
            self.wait(min(remaining, 0.1))
        lines, self._complete = self._complete or [], None
        reply = parse_reply_lines(lines)
        if reply.is_error:
            msg = f"Could not open database {self.database!r}: {reply.message}"
            raise ConnectionError(msg)

    def session_statements(self, config: "ConnectionConfig") -> "list[str]":
        return build_session_statements(config)

    def _write(self, data: bytes) -> None:
        process = self._process
        if process is None or process.stdin is None:
            msg = "Worker process is not running"
            raise SessionFatal(msg, self._sql)
        try:
            process.stdin.write(data)
            process.stdin.flush()
        except (OSError, ValueError) as exc:
            msg = f"Lost connection to worker process: {exc}"
            raise SessionFatal(msg, self._sql) from exc

    def send(self, sql: str, parameters: "Sequence[Any]") -> None:
        self._sql = sql
        self._complete = None
        self._write(encode_request(sql, parameters))

    def ready(self) -> bool:
        return self._complete is not None

    def wait(self, timeout: float) -> None:
        process, selector = self._process, self._selector
        if process is None or selector is None or process.stdout is None:
            msg = "Worker process is not running"
            raise SessionFatal(msg, self._sql)
        try:
            if not selector.select(timeout):
                return
            data = os.read(process.stdout.fileno(), READ_CHUNK_SIZE)
        except (OSError, ValueError, KeyError) as exc:
            msg = f"Lost connection to worker process: {exc}"
            raise SessionFatal(msg, self._sql) from exc
        if not data:
            msg = "Worker process exited"
            raise SessionFatal(msg, self._sql)
        self._feed(data)

    def _feed(self, data: bytes) -> None:
        self._buffer.extend(data)
        while True:
            end = self._buffer.find(b"\n")
            if end < 0:
                return
            line = self._buffer[:end].decode("utf-8")
            del self._buffer[: end + 1]
            if line == END_OF_REPLY:
                self._complete, self._pending = self._pending, []
            else:
                self._pending.append(line)

    def parse_reply(self) -> "list[tuple[Any, ...]]":
        lines, self._complete = self._complete, None
        if lines is None:
            msg = "No reply is pending"
            raise SymqlError(msg)
        try:
            reply = parse_reply_lines(lines, self._sql)
        except SerializationError as exc:
            msg = f"Unreadable reply from worker process: {exc}"
            raise SessionFatal(msg, self._sql) from exc
        return reply.rows_or_raise()

    def close(self) -> None:
        process, self._process = self._process, None
        selector, self._selector = self._selector, None
        self._buffer.clear()
        self._pending = []
        self._complete = None
        if selector is not None:
            selector.close()
        if process is None:
            return
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                logger.debug("Worker stdin already closed")
        try:
            process.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()
        logger.debug("Stopped worker process %s", process.pid)

    def reconnect(self, config: "ConnectionConfig") -> None:
        """Stop the worker and start a new one on the same database."""
        self.close()
        self.open(config)
