"""ANSI chat console: screen renderer, start menu and foreground loops."""

from __future__ import annotations

import logging
import sys
from typing import Callable, List, Sequence, TextIO, Tuple, TYPE_CHECKING

from ..client_config import DEFAULT_HISTORY_SIZE, DEFAULT_POLL_INTERVAL
from .context import SessionContext, TerminationReason
from .flavor import BOOT_LINES, UiMode, split_mentions
from .input_state import InputState, InputStateMachine
from .scrollback import DisplayLine, LineKind
from .terminal import CLEAR_SCREEN, RESET_ATTRIBUTES, KeyboardSource, terminal_size

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .session import ChatSession


LOGGER = logging.getLogger(__name__)

# Top border, header, separator, separator, input, bottom border, status.
CHROME_ROWS = 7
MIN_COLUMNS = 20

BOLD = "\x1b[1m"
DIM = "\x1b[2m"
REVERSE = "\x1b[7m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
MAGENTA = "\x1b[35m"
CYAN = "\x1b[36m"
GREY = "\x1b[90m"
BELL = "\a"

_THEMES = {
    UiMode.SPARTAN: {"border": CYAN, "author": CYAN, "accent": YELLOW},
    UiMode.GRAVEMIND: {"border": GREEN, "author": GREEN, "accent": MAGENTA},
}
_KIND_STYLES = {
    LineKind.SYSTEM: YELLOW,
    LineKind.DISCONNECT: BOLD + RED,
    LineKind.UNTYPED: GREY,
    LineKind.LOCAL: MAGENTA,
}
MENTION_STYLE = BOLD + REVERSE + RED

Chunk = Tuple[str, str]


def sanitize(text: str) -> str:
    """Replace anything outside printable ASCII with ``?``."""

    return "".join(char if 32 <= ord(char) <= 126 else "?" for char in text)


def _styled(chunks: Sequence[Chunk], width: int) -> str:
    """Join ``(text, style)`` chunks, truncated and padded to ``width`` cells."""

    pieces: List[str] = []
    used = 0
    for text, style in chunks:
        if used >= width:
            break
        text = text[: width - used]
        if not text:
            continue
        used += len(text)
        pieces.append(f"{style}{text}{RESET_ATTRIBUTES}" if style else text)
    pieces.append(" " * (width - used))
    return "".join(pieces)


class ScreenRenderer:
    """Compose the chat screen and repaint only the rows that changed."""

    def __init__(
        self,
        context: SessionContext,
        *,
        out: TextIO | None = None,
        size_source: Callable[[], Tuple[int, int]] | None = None,
        target: str = "",
    ) -> None:
        self.context = context
        self.out = out if out is not None else sys.stdout
        self._size_source = size_source or (lambda: terminal_size(self.out))
        self.target = target
        self._previous: List[str] = []
        self._last_size: Tuple[int, int] | None = None
        self._last_mode: UiMode | None = None

    # Geometry -------------------------------------------------------------

    @staticmethod
    def message_height(rows: int) -> int:
        return max(1, rows - CHROME_ROWS)

    def size(self) -> Tuple[int, int]:
        columns, rows = self._size_source()
        return max(MIN_COLUMNS, columns), max(CHROME_ROWS + 1, rows)

    def needs_full_repaint(self, size: Tuple[int, int] | None = None) -> bool:
        if size is None:
            size = self.size()
        return size != self._last_size or self.context.mode is not self._last_mode

    def invalidate(self) -> None:
        self._previous = []
        self._last_size = None

    # Composition ----------------------------------------------------------

    def compose(self, input_text: str, size: Tuple[int, int]) -> List[str]:
        """Return one string per screen row for the current state."""

        columns, rows = size
        context = self.context
        theme = _THEMES[context.mode]
        inner = columns - 4
        msg_h = self.message_height(rows)
        border = theme["border"]
        rule = f"{border}+{'-' * (columns - 2)}+{RESET_ATTRIBUTES}"

        def boxed(chunks: Sequence[Chunk]) -> str:
            edge = f"{border}|{RESET_ATTRIBUTES}"
            return f"{edge} {_styled(chunks, inner)} {edge}"

        header = [
            (f"MYCORD :: {context.mode.title}", BOLD + theme["accent"]),
            (f" :: {context.display_name}", ""),
        ]
        if self.target:
            header.append((f" @ {self.target}", DIM))

        lines: List[str] = [rule, boxed(header), rule]
        with context.store.view(msg_h) as window:
            for line in window.lines:
                lines.append(boxed(self._message_chunks(line)))
            for _ in range(msg_h - len(window.lines)):
                lines.append(boxed(()))
            total = window.total
            offset = window.scroll_offset
        lines.append(rule)
        lines.append(boxed(self._input_chunks(input_text, inner)))
        lines.append(rule)
        lines.append(self._status_row(columns, total, offset))
        return lines

    def _message_chunks(self, line: DisplayLine) -> List[Chunk]:
        context = self.context
        theme = _THEMES[context.mode]
        author_style = theme["author"] if line.kind is LineKind.RECEIVE else _KIND_STYLES[line.kind]
        chunks: List[Chunk] = [
            (f"[{sanitize(line.time_label)}] ", DIM),
            (f"{sanitize(line.author)}: ", BOLD + author_style),
        ]
        text = sanitize(line.text)
        if line.kind is not LineKind.RECEIVE:
            chunks.append((text, _KIND_STYLES[line.kind]))
        elif line.mention and not context.quiet:
            for chunk, is_mention in split_mentions(text, context.display_name):
                chunks.append((chunk, MENTION_STYLE if is_mention else ""))
        else:
            chunks.append((text, ""))
        return chunks

    @staticmethod
    def _input_chunks(input_text: str, inner: int) -> List[Chunk]:
        visible = max(0, inner - 3)
        tail = input_text[-visible:] if visible else ""
        return [("> ", BOLD), (tail, ""), ("_", REVERSE)]

    def _status_row(self, columns: int, total: int, offset: int) -> str:
        mode = self.context.mode.title
        parts = [f" {mode}", f"messages {total}"]
        parts.append(f"scrolled {offset}" if offset else "live")
        parts.append("!help for commands")
        return _styled([(" | ".join(parts), REVERSE)], columns)

    # Output ---------------------------------------------------------------

    def render(self, input_text: str = "") -> str:
        """Write the changed rows to ``out`` and return what was written."""

        size = self.size()
        full = self.needs_full_repaint(size)
        rows = self.compose(input_text, size)
        pieces: List[str] = [CLEAR_SCREEN] if full else []
        for index, row in enumerate(rows):
            if not full and index < len(self._previous) and self._previous[index] == row:
                continue
            pieces.append(f"\x1b[{index + 1};1H{row}\x1b[K")
        output = "".join(pieces)
        if output:
            self.out.write(output)
            self.out.flush()
        self._previous = rows
        self._last_size = size
        self._last_mode = self.context.mode
        return output


MENU_LINES = {
    UiMode.SPARTAN: (
        "MYCORD :: SPARTAN COMMUNICATIONS",
        "",
        "  [ENTER]  Connect",
        "  [ESC]    Switch to Gravemind interface",
        "  [Q]      Quit",
    ),
    UiMode.GRAVEMIND: (
        "MYCORD :: GRAVEMIND NEURAL NETWORK",
        "",
        "  [ENTER]  Connect",
        "  [ESC]    Switch to Spartan interface",
        "  [Q]      Quit",
    ),
}


class ChatConsoleApp:
    """Full-screen foreground loop: start menu, boot lines, keys and redraws."""

    def __init__(
        self,
        context: SessionContext,
        *,
        keyboard: KeyboardSource | None = None,
        renderer: ScreenRenderer | None = None,
        out: TextIO | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        history_size: int = DEFAULT_HISTORY_SIZE,
        boot_delay: float = 0.0,
    ) -> None:
        self.context = context
        self.out = out if out is not None else sys.stdout
        self.keyboard = keyboard or KeyboardSource()
        self.renderer = renderer or ScreenRenderer(context, out=self.out)
        self.poll_interval = poll_interval
        self.history_size = history_size
        self.boot_delay = boot_delay
        self.machine: InputStateMachine | None = None

    # Start menu -----------------------------------------------------------

    def render_menu(self) -> None:
        lines = MENU_LINES[self.context.mode]
        self.out.write(CLEAR_SCREEN + "\r\n".join(lines) + "\r\n")
        self.out.flush()

    def start_menu(self) -> bool:
        """Show the menu; return ``True`` to connect, ``False`` to quit."""

        context = self.context
        context.announcements_enabled = False
        self.render_menu()
        while context.running:
            try:
                byte = self.keyboard.read_byte(self.poll_interval)
            except EOFError:
                context.stop(TerminationReason.INPUT_EOF)
                break
            if byte is None:
                continue
            if byte == 0x1B:
                if not self._drain_pending():
                    context.stop(TerminationReason.INPUT_EOF)
                    break
                context.mode = context.mode.toggled()
                LOGGER.debug("start menu switched to %s", context.mode.value)
                self.render_menu()
            elif byte in (0x0A, 0x0D):
                context.announcements_enabled = True
                self.renderer.invalidate()
                return True
            elif byte in (ord("q"), ord("Q")):
                context.stop(TerminationReason.LOCAL_COMMAND)
                break
        return False

    def _drain_pending(self) -> bool:
        """Swallow the tail of an ESC sequence; ``False`` once input has ended."""

        try:
            while self.keyboard.read_byte(0.0) is not None:
                pass
        except EOFError:
            return False
        return True

    # Session foreground ---------------------------------------------------

    def announce_boot(self) -> None:
        context = self.context
        for author, text in BOOT_LINES[context.mode]:
            context.store.add_local(author, text)
            if self.boot_delay > 0:
                self.render()
                if context.token.wait(self.boot_delay):
                    return
        context.store.add_local("UNSC", "Connected to server")

    def render(self) -> None:
        buffer = self.machine.state.buffer if self.machine is not None else ""
        self.renderer.render(buffer)

    def run_foreground(self, session: "ChatSession") -> None:
        context = self.context
        self.machine = InputStateMachine(
            context,
            session.send_message,
            state=InputState(history_size=self.history_size),
        )
        self.announce_boot()
        context.dirty.mark()
        while context.running:
            if context.dirty.consume() or self.renderer.needs_full_repaint():
                self.render()
            try:
                byte = self.keyboard.read_byte(self.poll_interval)
            except EOFError:
                context.stop(TerminationReason.INPUT_EOF)
                break
            if byte is None:
                self.machine.on_poll_timeout()
            else:
                self.machine.feed_byte(byte)
        context.dirty.consume()
        self.render()


class PlainConsole:
    """Line-mode foreground loop that prints new lines as they arrive."""

    def __init__(
        self,
        context: SessionContext,
        *,
        keyboard: KeyboardSource | None = None,
        out: TextIO | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        history_size: int = DEFAULT_HISTORY_SIZE,
        color: bool | None = None,
    ) -> None:
        self.context = context
        self.out = out if out is not None else sys.stdout
        self.keyboard = keyboard or KeyboardSource()
        self.poll_interval = poll_interval
        self.history_size = history_size
        if color is None:
            isatty = getattr(self.out, "isatty", None)
            color = bool(isatty and isatty())
        self.color = color
        self._sequence = 0

    def _paint(self, text: str, style: str) -> str:
        return f"{style}{text}{RESET_ATTRIBUTES}" if self.color else text

    def format_line(self, line: DisplayLine) -> str:
        text = sanitize(line.text)
        author = sanitize(line.author)
        if line.kind is LineKind.RECEIVE:
            alert = line.mention and not self.context.quiet
            if alert:
                text = "".join(
                    self._paint(chunk, RED) if is_mention else chunk
                    for chunk, is_mention in split_mentions(text, self.context.display_name)
                )
            prefix = BELL if alert else ""
            return f"{prefix}[MSG] [{line.time_label}] {author}: {text}"
        if line.kind is LineKind.DISCONNECT:
            return self._paint(f"[DISCONNECT] {text}", RED)
        if line.kind is LineKind.LOCAL:
            return f"[{author}] {text}"
        return self._paint(f"[System] {text}", GREY)

    def flush(self) -> int:
        """Print lines appended since the last flush; return how many."""

        lines, self._sequence = self.context.store.since(self._sequence)
        for line in lines:
            self.out.write(self.format_line(line) + "\n")
        if lines:
            self.out.flush()
        return len(lines)

    def run_foreground(self, session: "ChatSession") -> None:
        context = self.context
        machine = InputStateMachine(
            context,
            session.send_message,
            state=InputState(history_size=self.history_size),
        )
        context.store.add_local("UNSC", "Connected to server")
        while context.running:
            self.flush()
            try:
                text = self.keyboard.read_line(self.poll_interval)
            except EOFError:
                context.stop(TerminationReason.INPUT_EOF)
                break
            if text is not None:
                machine.submit_line(text.rstrip("\r"))
        self.flush()


__all__ = [
    "CHROME_ROWS",
    "ChatConsoleApp",
    "PlainConsole",
    "ScreenRenderer",
    "sanitize",
]
