"""Tests for the worker line protocol."""

import io
import math

import pytest

from symql.adapters.process.protocol import (
    decode_request,
    encode_reply,
    encode_request,
    parse_reply_lines,
    print_row,
)
from symql.adapters.process.worker import main, serve
from symql.driver import Reply
from symql.exceptions import BackendError, SerializationError, SessionFatal


def test_request_line() -> None:
    line = encode_request("SELECT ?", ["'Jeff'"])
    assert line == b"('SELECT ?', (\"'Jeff'\",))\n"
    assert decode_request(line.decode()) == ("SELECT ?", ("'Jeff'",))


@pytest.mark.parametrize("line", ["garbage", "('SELECT 1',)", "(1, ())", "('SELECT 1', [])"])
def test_malformed_request(line: str) -> None:
    with pytest.raises(SerializationError):
        decode_request(line)


def test_print_row() -> None:
    assert print_row((1, "'Jeff'", None)) == "(1, \"'Jeff'\", None, )"
    assert print_row(()) == "()"
    assert print_row((math.inf, -math.inf)) == "(1e999, -1e999, )"


def test_reply_encoding() -> None:
    assert encode_reply(Reply([(1,), (2,)])) == b"(1, )\n(2, )\n#\n"
    assert encode_reply(Reply()) == b"#\n"
    assert encode_reply(Reply.failure("constraint", "UNIQUE constraint failed")) == (
        b"!('constraint', 'UNIQUE constraint failed')\n#\n"
    )


def test_parse_reply_rows() -> None:
    reply = parse_reply_lines(["(1, 'a', )", "(1e999, None, )", "()"], "SELECT 1")
    assert reply.rows == [(1, "a"), (math.inf, None), ()]
    assert not reply.is_error


def test_parse_reply_error() -> None:
    reply = parse_reply_lines(["!('fatal', 'disk I/O error')"], "SELECT 1")
    assert reply.is_error
    with pytest.raises(SessionFatal) as exc_info:
        reply.rows_or_raise()
    assert exc_info.value.sql == "SELECT 1"

    with pytest.raises(BackendError) as constraint:
        parse_reply_lines(["!('constraint', 'UNIQUE')"]).rows_or_raise()
    assert constraint.value.error_class == "constraint"


@pytest.mark.parametrize("line", ["not a row", "5", "!'only a message'"])
def test_parse_reply_rejects_malformed_lines(line: str) -> None:
    with pytest.raises(SerializationError):
        parse_reply_lines([line])


def run_worker(*requests: bytes, options: bytes = b"{'database': ':memory:'}\n") -> "list[str]":
    stdin = io.BytesIO(options + b"".join(requests))
    stdout = io.BytesIO()
    serve(stdin, stdout)
    return stdout.getvalue().decode().splitlines()


def test_worker_answers_requests() -> None:
    lines = run_worker(
        encode_request("CREATE TABLE t (v)", ()),
        encode_request("INSERT INTO t VALUES (?), (?)", ("'a'", 2)),
        encode_request("SELECT v FROM t", ()),
    )
    assert lines == ["#", "#", "#", "(\"'a'\", )", "(2, )", "#"]


def test_worker_reports_errors_and_continues() -> None:
    lines = run_worker(b"garbage\n", encode_request("SELEC 1", ()), encode_request("SELECT 1", ()))
    assert lines[0] == "#"
    assert lines[1].startswith("!('syntax', ")
    assert "Malformed request" in lines[1]
    assert lines[2] == "#"
    assert lines[3].startswith("!('syntax', ")
    assert lines[4:] == ["#", "(1, )", "#"]


def test_worker_rejects_bad_options() -> None:
    stdout = io.BytesIO()
    assert serve(io.BytesIO(b"not options\n"), stdout) == 1
    first, end = stdout.getvalue().decode().splitlines()
    assert first.startswith("!('fatal', ")
    assert "Invalid session options" in first
    assert end == "#"


def test_worker_exit_code_on_clean_shutdown() -> None:
    assert serve(io.BytesIO(b"{'database': ':memory:'}\n"), io.BytesIO()) == 0


def test_worker_main_serves_standard_streams(monkeypatch: pytest.MonkeyPatch) -> None:
    stdin = io.TextIOWrapper(io.BytesIO(b"{'database': ':memory:'}\n" + encode_request("SELECT 1", ())))
    stdout = io.TextIOWrapper(io.BytesIO())
    monkeypatch.setattr("sys.stdin", stdin)
    monkeypatch.setattr("sys.stdout", stdout)
    assert main() == 0
    assert stdout.buffer.getvalue().decode().splitlines() == ["#", "(1, )", "#"]  # type: ignore[attr-defined]
