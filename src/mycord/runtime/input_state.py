"""Keyboard interpretation: key decoding, line editing, history and commands."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Deque, Optional

from ..client_config import DEFAULT_HISTORY_SIZE
from ..protocol import MAX_BODY_LENGTH, ValidationError, validate_body
from .context import SessionContext, TerminationReason
from .flavor import SWITCH_NOTICES, UiMode


PAGE_STEP = 5

_ESC = 0x1B
_BACKSPACE_BYTES = frozenset({0x7F, 0x08})
_ENTER_BYTES = frozenset({0x0A, 0x0D})

HELP_TEXT = "Commands: !help !gravemind !spartan !disconnect"


class Key(Enum):
    """Editing actions recognised in the raw keyboard stream."""

    ENTER = auto()
    BACKSPACE = auto()
    UP = auto()
    DOWN = auto()
    PAGE_UP = auto()
    PAGE_DOWN = auto()
    CHAR = auto()


@dataclass(frozen=True, slots=True)
class KeyPress:
    key: Key
    char: str = ""


class _DecoderState(Enum):
    GROUND = auto()
    ESCAPE = auto()
    CSI = auto()
    SS3 = auto()


class KeyDecoder:
    """Turn raw terminal bytes into :class:`KeyPress` events.

    Escape sequences are consumed whole and never reach the line buffer. A
    lone ESC, or any sequence not listed below, is discarded:

    * ``ESC [ A`` / ``ESC O A``: up
    * ``ESC [ B`` / ``ESC O B``: down
    * ``ESC [ 5 ~`` / ``ESC [ 6 ~``: page up / page down
    """

    def __init__(self) -> None:
        self._state = _DecoderState.GROUND
        self._params = ""

    @property
    def pending(self) -> bool:
        return self._state is not _DecoderState.GROUND

    def reset(self) -> None:
        """Drop a partial escape sequence (called when the poll times out)."""

        self._state = _DecoderState.GROUND
        self._params = ""

    def feed(self, byte: int) -> Optional[KeyPress]:
        state = self._state
        if state is _DecoderState.GROUND:
            return self._feed_ground(byte)
        if state is _DecoderState.ESCAPE:
            if byte == ord("["):
                self._state = _DecoderState.CSI
            elif byte == ord("O"):
                self._state = _DecoderState.SS3
            else:
                self.reset()
            return None
        if state is _DecoderState.SS3:
            self.reset()
            return _ARROWS.get(byte)
        return self._feed_csi(byte)

    def _feed_ground(self, byte: int) -> Optional[KeyPress]:
        if byte == _ESC:
            self._state = _DecoderState.ESCAPE
            return None
        if byte in _ENTER_BYTES:
            return KeyPress(Key.ENTER)
        if byte in _BACKSPACE_BYTES:
            return KeyPress(Key.BACKSPACE)
        if 32 <= byte <= 126:
            return KeyPress(Key.CHAR, chr(byte))
        return None

    def _feed_csi(self, byte: int) -> Optional[KeyPress]:
        if 0x30 <= byte <= 0x3F:
            self._params += chr(byte)
            if len(self._params) > 8:
                self.reset()
            return None
        if 0x20 <= byte <= 0x2F:
            return None
        params = self._params
        self.reset()
        if byte == ord("~"):
            return _TILDE_KEYS.get(params)
        if not params:
            return _ARROWS.get(byte)
        return None


_ARROWS = {
    ord("A"): KeyPress(Key.UP),
    ord("B"): KeyPress(Key.DOWN),
}
_TILDE_KEYS = {
    "5": KeyPress(Key.PAGE_UP),
    "6": KeyPress(Key.PAGE_DOWN),
}


class InputState:
    """Line buffer and submission history owned by the foreground thread."""

    def __init__(
        self,
        *,
        capacity: int = MAX_BODY_LENGTH,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self.capacity = capacity
        self._chars: list[str] = []
        self.history: Deque[str] = deque(maxlen=history_size)
        self.history_cursor = 0

    @property
    def buffer(self) -> str:
        return "".join(self._chars)

    def __len__(self) -> int:
        return len(self._chars)

    def insert(self, char: str) -> bool:
        if len(self._chars) >= self.capacity:
            return False
        self._chars.append(char)
        return True

    def backspace(self) -> bool:
        if not self._chars:
            return False
        self._chars.pop()
        return True

    def clear(self) -> bool:
        if not self._chars:
            return False
        self._chars.clear()
        return True

    def load(self, text: str) -> bool:
        text = text[: self.capacity]
        if text == self.buffer:
            return False
        self._chars = list(text)
        return True

    def push_history(self, text: str) -> None:
        """Remember ``text`` unless it repeats the latest entry."""

        if text and (not self.history or self.history[-1] != text):
            self.history.append(text)
        self.reset_history_cursor()

    def reset_history_cursor(self) -> None:
        self.history_cursor = len(self.history)

    def history_back(self) -> bool:
        """Step to the previous entry (stopping at the oldest) and load it."""

        if self.history and self.history_cursor > 0:
            self.history_cursor -= 1
        if 0 <= self.history_cursor < len(self.history):
            return self.load(self.history[self.history_cursor])
        return False

    def history_forward(self) -> bool:
        """Step to the next entry; past the newest the buffer is cleared."""

        if self.history_cursor < len(self.history):
            self.history_cursor += 1
        if self.history_cursor == len(self.history):
            return self.clear()
        return self.load(self.history[self.history_cursor])


class LocalCommand(Enum):
    """Client-side commands; never sent as chat text."""

    HELP = "!help"
    GRAVEMIND = "!gravemind"
    SPARTAN = "!spartan"
    DISCONNECT = "!disconnect"
    DISCONNECT_TYPO = "!disconect"

    @classmethod
    def parse(cls, text: str) -> "LocalCommand | None":
        try:
            return cls(text)
        except ValueError:
            return None


SubmitCallable = Callable[[str], bool]


class InputStateMachine:
    """Apply keyboard events to :class:`InputState` and the session."""

    def __init__(
        self,
        context: SessionContext,
        submit: SubmitCallable,
        *,
        state: InputState | None = None,
        decoder: KeyDecoder | None = None,
    ) -> None:
        self.context = context
        self.submit = submit
        self.state = state if state is not None else InputState()
        self.decoder = decoder if decoder is not None else KeyDecoder()

    # Byte stream ----------------------------------------------------------

    def feed_byte(self, byte: int) -> None:
        press = self.decoder.feed(byte)
        if press is not None:
            self.handle_key(press)

    def feed(self, data: bytes) -> None:
        for byte in data:
            self.feed_byte(byte)

    def on_poll_timeout(self) -> None:
        # A bare ESC with nothing after it is dropped here.
        self.decoder.reset()

    # Key handling ---------------------------------------------------------

    def handle_key(self, press: KeyPress) -> None:
        key = press.key
        state = self.state
        store = self.context.store
        if key is Key.CHAR:
            self._changed(state.insert(press.char))
        elif key is Key.BACKSPACE:
            self._changed(state.backspace())
        elif key is Key.ENTER:
            self.submit_line(state.buffer)
        elif key is Key.UP:
            if len(state) == 0:
                store.scroll_up(1)
            else:
                self._changed(state.history_back())
        elif key is Key.DOWN:
            if len(state) == 0:
                store.scroll_down(1)
            else:
                self._changed(state.history_forward())
        elif key is Key.PAGE_UP:
            store.scroll_up(PAGE_STEP)
        elif key is Key.PAGE_DOWN:
            store.scroll_down(PAGE_STEP)

    def submit_line(self, text: str) -> None:
        """Handle a completed line as Enter would."""

        state = self.state
        if not text:
            return
        command = LocalCommand.parse(text)
        if command is not None:
            self.run_command(command)
            self._changed(state.clear())
            state.reset_history_cursor()
            return
        try:
            validate_body(text)
        except ValidationError as exc:
            self.context.store.add_local("ERROR", str(exc))
            self._changed(state.clear())
            return
        if self.submit(text):
            state.push_history(text)
        self._changed(state.clear())

    def run_command(self, command: LocalCommand) -> None:
        context = self.context
        store = context.store
        if command is LocalCommand.HELP:
            store.add_local("HELP", HELP_TEXT)
        elif command in (LocalCommand.GRAVEMIND, LocalCommand.SPARTAN):
            mode = UiMode.GRAVEMIND if command is LocalCommand.GRAVEMIND else UiMode.SPARTAN
            context.mode = mode
            store.add_local(*SWITCH_NOTICES[mode])
        else:
            context.stop(TerminationReason.LOCAL_COMMAND)

    def _changed(self, changed: bool) -> None:
        if changed:
            self.context.dirty.mark()


__all__ = [
    "HELP_TEXT",
    "InputState",
    "InputStateMachine",
    "Key",
    "KeyDecoder",
    "KeyPress",
    "LocalCommand",
    "PAGE_STEP",
]
