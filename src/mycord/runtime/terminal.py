"""Raw terminal mode, non-blocking keyboard reads and size queries."""

from __future__ import annotations

import contextlib
import logging
import os
import select
import shutil
import sys
import termios
from typing import Iterator, Optional, TextIO, Tuple


LOGGER = logging.getLogger(__name__)

FALLBACK_SIZE: Tuple[int, int] = (80, 24)

HIDE_CURSOR = "\x1b[?25l"
SHOW_CURSOR = "\x1b[?25h"
CLEAR_SCREEN = "\x1b[2J\x1b[H"
RESET_ATTRIBUTES = "\x1b[0m"


@contextlib.contextmanager
def raw_terminal(
    fd: int | None = None,
    *,
    stream: TextIO | None = None,
) -> Iterator[bool]:
    """Put the terminal behind ``fd`` into raw mode for the block's duration.

    Echo, canonical line buffering, XON/XOFF, CR translation and output
    post-processing are switched off and reads return after one byte. The
    original attributes are restored on exit, including exits through an
    exception. Yields ``False`` without touching anything when ``fd`` is not a
    terminal.
    """

    if fd is None:
        fd = sys.stdin.fileno()
    out = stream if stream is not None else sys.stdout
    if not os.isatty(fd):
        yield False
        return
    saved = termios.tcgetattr(fd)
    raw = termios.tcgetattr(fd)
    raw[0] &= ~(termios.IXON | termios.ICRNL)
    raw[1] &= ~termios.OPOST
    raw[3] &= ~(termios.ECHO | termios.ICANON)
    raw[6][termios.VMIN] = 1
    raw[6][termios.VTIME] = 0
    termios.tcsetattr(fd, termios.TCSAFLUSH, raw)
    out.write(HIDE_CURSOR)
    out.flush()
    try:
        yield True
    finally:
        termios.tcsetattr(fd, termios.TCSAFLUSH, saved)
        out.write(RESET_ATTRIBUTES + SHOW_CURSOR)
        out.flush()
        LOGGER.debug("terminal attributes restored")


def terminal_size(stream: TextIO | None = None) -> Tuple[int, int]:
    """Return ``(columns, rows)``, falling back to 80x24 when unknown."""

    out = stream if stream is not None else sys.stdout
    try:
        size = os.get_terminal_size(out.fileno())
    except (AttributeError, OSError, ValueError):
        size = shutil.get_terminal_size(FALLBACK_SIZE)
    columns, rows = size.columns, size.lines
    if columns <= 0 or rows <= 0:
        return FALLBACK_SIZE
    return columns, rows


class KeyboardSource:
    """Poll one file descriptor for single bytes with a timeout."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = fd

    @property
    def fd(self) -> int:
        # Looked up on first read so building a source never touches stdin.
        if self._fd is None:
            self._fd = sys.stdin.fileno()
        return self._fd

    def ready(self, timeout: float) -> bool:
        while True:
            try:
                readable, _, _ = select.select([self.fd], [], [], timeout)
            except InterruptedError:
                continue
            return bool(readable)

    def read_byte(self, timeout: float) -> Optional[int]:
        """Return the next byte, ``None`` on timeout; raise ``EOFError`` at EOF."""

        if not self.ready(timeout):
            return None
        while True:
            try:
                data = os.read(self.fd, 1)
            except InterruptedError:
                continue
            if not data:
                raise EOFError("keyboard input closed")
            return data[0]

    def read_line(self, timeout: float) -> Optional[str]:
        """Line-mode read used by the plain console; ``None`` on timeout."""

        if not self.ready(timeout):
            return None
        chunks = bytearray()
        while True:
            try:
                data = os.read(self.fd, 1)
            except InterruptedError:
                continue
            if not data:
                if chunks:
                    break
                raise EOFError("keyboard input closed")
            if data in (b"\n", b"\r"):
                break
            chunks += data
        return chunks.decode("utf-8", errors="replace")


__all__ = [
    "CLEAR_SCREEN",
    "FALLBACK_SIZE",
    "HIDE_CURSOR",
    "KeyboardSource",
    "RESET_ATTRIBUTES",
    "SHOW_CURSOR",
    "raw_terminal",
    "terminal_size",
]
