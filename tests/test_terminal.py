from __future__ import annotations

import io
import os
import termios

import pytest

from mycord.runtime import terminal
from mycord.runtime.terminal import (
    HIDE_CURSOR,
    SHOW_CURSOR,
    KeyboardSource,
    raw_terminal,
    terminal_size,
)


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


def test_raw_terminal_is_noop_for_pipes(pipe) -> None:
    read_fd, _ = pipe
    out = io.StringIO()

    with raw_terminal(read_fd, stream=out) as active:
        assert active is False

    assert out.getvalue() == ""


def test_raw_terminal_restores_attributes_even_on_error() -> None:
    master, slave = os.openpty()
    out = io.StringIO()
    try:
        before = termios.tcgetattr(slave)
        with pytest.raises(RuntimeError):
            with raw_terminal(slave, stream=out) as active:
                assert active
                attrs = termios.tcgetattr(slave)
                assert not attrs[3] & termios.ECHO
                assert not attrs[3] & termios.ICANON
                assert not attrs[0] & termios.IXON
                assert not attrs[1] & termios.OPOST
                raise RuntimeError("boom")
        assert termios.tcgetattr(slave) == before
        assert out.getvalue().startswith(HIDE_CURSOR)
        assert out.getvalue().endswith(SHOW_CURSOR)
    finally:
        os.close(master)
        os.close(slave)


def test_read_byte_times_out_then_reads(pipe) -> None:
    read_fd, write_fd = pipe
    keyboard = KeyboardSource(read_fd)

    assert keyboard.read_byte(0.01) is None
    os.write(write_fd, b"ab")
    assert keyboard.read_byte(0.01) == ord("a")
    assert keyboard.read_byte(0.01) == ord("b")


def test_read_byte_raises_eof_when_input_closes(pipe) -> None:
    read_fd, write_fd = pipe
    os.close(write_fd)

    with pytest.raises(EOFError):
        KeyboardSource(read_fd).read_byte(0.01)


def test_read_line_strips_newline_and_handles_eof(pipe) -> None:
    read_fd, write_fd = pipe
    keyboard = KeyboardSource(read_fd)
    os.write(write_fd, b"hello\nlast")
    os.close(write_fd)

    assert keyboard.read_line(0.01) == "hello"
    assert keyboard.read_line(0.01) == "last"
    with pytest.raises(EOFError):
        keyboard.read_line(0.01)


class DetachedStdin(io.StringIO):
    def fileno(self) -> int:
        raise io.UnsupportedOperation("fileno")


def test_keyboard_source_defers_stdin_lookup(monkeypatch: pytest.MonkeyPatch, pipe) -> None:
    # Why: pytest replaces stdin with an object that has no descriptor.
    monkeypatch.setattr(terminal.sys, "stdin", DetachedStdin())

    keyboard = KeyboardSource()
    with pytest.raises(io.UnsupportedOperation):
        keyboard.read_byte(0.0)

    read_fd, _ = pipe
    assert KeyboardSource(read_fd).fd == read_fd


class FakeStream(io.StringIO):
    def fileno(self) -> int:
        return 99


def test_terminal_size_falls_back_for_unknown_sizes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(terminal.os, "get_terminal_size", lambda fd: os.terminal_size((0, 0)))

    assert terminal_size(FakeStream()) == (80, 24)


def test_terminal_size_reports_stream_size(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(terminal.os, "get_terminal_size", lambda fd: os.terminal_size((132, 43)))

    assert terminal_size(FakeStream()) == (132, 43)
