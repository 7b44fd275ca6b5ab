"""Bounded, lock-guarded scrollback log shared by the session threads."""

from __future__ import annotations

import contextlib
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Deque, Iterator, Tuple

from ..protocol import FrameKind


DEFAULT_CAPACITY = 600
DEFAULT_WINDOW = 17
TIME_FORMAT = "%H:%M:%S"


class LineKind(Enum):
    """Display category of a scrollback line."""

    RECEIVE = auto()
    SYSTEM = auto()
    DISCONNECT = auto()
    UNTYPED = auto()
    LOCAL = auto()

    @classmethod
    def for_frame_kind(cls, kind: int) -> "LineKind":
        if kind == FrameKind.RECEIVE:
            return cls.RECEIVE
        if kind == FrameKind.SYSTEM:
            return cls.SYSTEM
        if kind == FrameKind.DISCONNECT:
            return cls.DISCONNECT
        return cls.UNTYPED


@dataclass(frozen=True, slots=True)
class DisplayLine:
    """One immutable entry of the scrollback log."""

    time_label: str
    author: str
    text: str
    kind: LineKind
    mention: bool = False

    @classmethod
    def local(cls, author: str, text: str, *, time_label: str = "SYSTEM") -> "DisplayLine":
        return cls(time_label=time_label, author=author, text=text, kind=LineKind.LOCAL)


def format_time_label(timestamp: float | None = None) -> str:
    """Render ``timestamp`` (default: now) as a local ``HH:MM:SS`` label."""

    if timestamp is None:
        timestamp = time.time()
    return time.strftime(TIME_FORMAT, time.localtime(timestamp))


class DirtyFlag:
    """Best-effort redraw request shared between producers and the renderer."""

    def __init__(self, initial: bool = False) -> None:
        self._event = threading.Event()
        if initial:
            self._event.set()

    def mark(self) -> None:
        self._event.set()

    def consume(self) -> bool:
        """Clear the flag and return whether it was set."""

        if not self._event.is_set():
            return False
        self._event.clear()
        return True

    @property
    def is_set(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class ScrollbackWindow:
    """Visible slice of the log computed under the store lock."""

    lines: Tuple[DisplayLine, ...]
    start: int
    total: int
    scroll_offset: int


class ScrollbackStore:
    """Ordered log of :class:`DisplayLine` entries plus a scroll offset.

    ``scroll_offset`` counts how many lines above the newest entry the visible
    window ends. It is clamped to ``[0, max(0, len(lines) - window)]`` so the
    window never starts before the first line; ``window`` is the message-area
    height most recently published by the renderer.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        *,
        dirty: DirtyFlag | None = None,
        window: int = DEFAULT_WINDOW,
    ) -> None:
        if capacity < 1:
            raise ValueError("scrollback capacity must be positive")
        self.capacity = capacity
        self.dirty = dirty if dirty is not None else DirtyFlag()
        self._lock = threading.Lock()
        self._lines: Deque[DisplayLine] = deque(maxlen=capacity)
        self._scroll_offset = 0
        self._window = max(1, int(window))
        self._sequence = 0

    # Producers ------------------------------------------------------------

    def append(self, line: DisplayLine) -> None:
        """Append ``line``, evicting the oldest entry once at capacity."""

        with self._lock:
            self._lines.append(line)
            self._sequence += 1
            if self._scroll_offset > 0:
                # Keep a manually scrolled view anchored on the same lines.
                self._scroll_offset = min(self._scroll_offset + 1, self._max_offset())
        self.dirty.mark()

    def add_local(self, author: str, text: str) -> None:
        self.append(DisplayLine.local(author, text))

    # Scrolling ------------------------------------------------------------

    def scroll_up(self, step: int = 1) -> bool:
        return self._scroll_by(step)

    def scroll_down(self, step: int = 1) -> bool:
        return self._scroll_by(-step)

    @property
    def scroll_offset(self) -> int:
        with self._lock:
            return self._scroll_offset

    # Readers --------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    @property
    def sequence(self) -> int:
        """Number of lines appended since the store was created."""

        with self._lock:
            return self._sequence

    def snapshot(self) -> Tuple[DisplayLine, ...]:
        with self._lock:
            return tuple(self._lines)

    def since(self, sequence: int) -> Tuple[Tuple[DisplayLine, ...], int]:
        """Return lines appended after ``sequence`` and the new sequence number.

        Lines that were already evicted are silently skipped.
        """

        with self._lock:
            pending = max(0, self._sequence - sequence)
            available = min(pending, len(self._lines))
            lines = tuple(self._lines)[len(self._lines) - available :] if available else ()
            return lines, self._sequence

    @contextlib.contextmanager
    def view(self, height: int) -> Iterator[ScrollbackWindow]:
        """Hold the lock while the caller paints a window of ``height`` lines."""

        with self._lock:
            self._window = max(1, int(height))
            self._scroll_offset = min(self._scroll_offset, self._max_offset())
            total = len(self._lines)
            start = max(0, total - self._window - self._scroll_offset)
            end = min(total, start + self._window)
            lines = tuple(self._lines[index] for index in range(start, end))
            yield ScrollbackWindow(
                lines=lines,
                start=start,
                total=total,
                scroll_offset=self._scroll_offset,
            )

    # Internal helpers -----------------------------------------------------

    def _max_offset(self) -> int:
        return max(0, len(self._lines) - self._window)

    def _scroll_by(self, delta: int) -> bool:
        with self._lock:
            target = min(max(0, self._scroll_offset + delta), self._max_offset())
            if target == self._scroll_offset:
                return False
            self._scroll_offset = target
        self.dirty.mark()
        return True


__all__ = [
    "DEFAULT_CAPACITY",
    "DirtyFlag",
    "DisplayLine",
    "LineKind",
    "ScrollbackStore",
    "ScrollbackWindow",
    "format_time_label",
]
