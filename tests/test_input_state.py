from __future__ import annotations

from typing import List

import pytest

from mycord.runtime.context import SessionContext, TerminationReason
from mycord.runtime.flavor import UiMode
from mycord.runtime.input_state import (
    HELP_TEXT,
    InputState,
    InputStateMachine,
    Key,
    KeyDecoder,
    KeyPress,
    LocalCommand,
)
from mycord.runtime.scrollback import LineKind, ScrollbackStore


class RecordingSubmit:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: List[str] = []

    def __call__(self, text: str) -> bool:
        self.sent.append(text)
        return self.result


def _machine(submit: RecordingSubmit | None = None, *, window: int = 3) -> InputStateMachine:
    context = SessionContext("spartan117", store=ScrollbackStore(window=window))
    return InputStateMachine(context, submit or RecordingSubmit())


def _decode_all(data: bytes) -> List[KeyPress]:
    decoder = KeyDecoder()
    presses = []
    for byte in data:
        press = decoder.feed(byte)
        if press is not None:
            presses.append(press)
    return presses


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (b"\x1b[A", Key.UP),
        (b"\x1bOA", Key.UP),
        (b"\x1b[B", Key.DOWN),
        (b"\x1bOB", Key.DOWN),
        (b"\x1b[5~", Key.PAGE_UP),
        (b"\x1b[6~", Key.PAGE_DOWN),
        (b"\r", Key.ENTER),
        (b"\n", Key.ENTER),
        (b"\x7f", Key.BACKSPACE),
        (b"\x08", Key.BACKSPACE),
    ],
)
def test_decoder_recognises_editing_keys(data: bytes, expected: Key) -> None:
    assert _decode_all(data) == [KeyPress(expected)]


def test_decoder_swallows_unknown_sequences() -> None:
    presses = _decode_all(b"a\x1b[C\x1b[1;5D\x1b[3~b")

    assert presses == [KeyPress(Key.CHAR, "a"), KeyPress(Key.CHAR, "b")]


def test_decoder_drops_control_bytes() -> None:
    assert _decode_all(b"\x01\x02\t") == []


def test_decoder_reset_discards_bare_escape() -> None:
    decoder = KeyDecoder()
    assert decoder.feed(0x1B) is None
    assert decoder.pending

    decoder.reset()

    assert not decoder.pending
    assert decoder.feed(ord("[")) == KeyPress(Key.CHAR, "[")


def test_history_walks_back_and_forward() -> None:
    state = InputState()
    state.push_history("a")
    state.push_history("b")

    assert state.history_back()
    assert state.buffer == "b"
    assert state.history_back()
    assert state.buffer == "a"
    assert not state.history_back()
    assert state.buffer == "a"
    assert state.history_forward()
    assert state.buffer == "b"
    assert state.history_forward()
    assert state.buffer == ""


def test_history_skips_consecutive_duplicates_and_is_bounded() -> None:
    state = InputState(history_size=3)
    for text in ("x", "x", "y", "z", "w"):
        state.push_history(text)

    assert list(state.history) == ["y", "z", "w"]
    assert state.history_cursor == 3


def test_buffer_is_capped_at_maximum_body_length() -> None:
    state = InputState(capacity=4)

    assert all(state.insert(char) for char in "abcd")
    assert not state.insert("e")
    assert state.buffer == "abcd"


def test_typing_and_backspace_mark_dirty() -> None:
    machine = _machine()
    dirty = machine.context.dirty

    machine.feed(b"hi")
    assert machine.state.buffer == "hi"
    assert dirty.consume()

    machine.feed(b"\x7f")
    assert machine.state.buffer == "h"
    assert dirty.consume()

    machine.feed(b"\x7f\x7f")
    assert machine.state.buffer == ""
    assert dirty.consume()
    machine.feed(b"\x7f")
    assert not dirty.consume()


def test_enter_submits_and_records_history() -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.feed(b"hello there\r")

    assert submit.sent == ["hello there"]
    assert machine.state.buffer == ""
    assert list(machine.state.history) == ["hello there"]


def test_enter_on_empty_buffer_does_nothing() -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.feed(b"\r")

    assert submit.sent == []
    assert len(machine.context.store) == 0


def test_failed_write_is_not_recorded_in_history() -> None:
    submit = RecordingSubmit(result=False)
    machine = _machine(submit)

    machine.feed(b"lost\r")

    assert submit.sent == ["lost"]
    assert list(machine.state.history) == []


def test_full_length_line_is_submitted() -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.feed(b"q" * 1023 + b"\r")

    assert submit.sent == ["q" * 1023]


def test_invalid_text_surfaces_local_error_and_is_not_sent() -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.submit_line("café")

    assert submit.sent == []
    (line,) = machine.context.store.snapshot()
    assert line.kind is LineKind.LOCAL
    assert "non-ASCII" in line.text


def test_arrow_keys_use_history_when_buffer_has_text() -> None:
    machine = _machine()
    machine.feed(b"first\rsecond\r")

    machine.feed(b"x\x1b[A")
    assert machine.state.buffer == "second"
    machine.feed(b"\x1b[A")
    assert machine.state.buffer == "first"
    machine.feed(b"\x1b[B")
    assert machine.state.buffer == "second"


def test_arrow_keys_scroll_when_buffer_is_empty() -> None:
    machine = _machine(window=2)
    store = machine.context.store
    for index in range(10):
        store.add_local("UNSC", f"line {index}")

    machine.feed(b"\x1b[A")
    assert store.scroll_offset == 1
    machine.feed(b"\x1b[5~")
    assert store.scroll_offset == 6
    machine.feed(b"\x1b[B")
    assert store.scroll_offset == 5
    machine.feed(b"\x1b[6~\x1b[6~")
    assert store.scroll_offset == 0


def test_help_command_is_local() -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.feed(b"!help\r")

    assert submit.sent == []
    assert machine.context.store.snapshot()[-1].text == HELP_TEXT
    assert list(machine.state.history) == []


def test_mode_commands_switch_flavor() -> None:
    machine = _machine()
    context = machine.context

    machine.submit_line("!gravemind")
    assert context.mode is UiMode.GRAVEMIND
    machine.submit_line("!gravemind")
    assert context.mode is UiMode.GRAVEMIND
    machine.submit_line("!spartan")
    assert context.mode is UiMode.SPARTAN
    assert [line.author for line in context.store.snapshot()] == ["GRAVEMIND", "GRAVEMIND", "UNSC"]


@pytest.mark.parametrize("command", ["!disconnect", "!disconect"])
def test_disconnect_commands_stop_the_session(command: str) -> None:
    submit = RecordingSubmit()
    machine = _machine(submit)

    machine.submit_line(command)

    assert not machine.context.running
    assert machine.context.token.reason is TerminationReason.LOCAL_COMMAND
    assert submit.sent == []


def test_command_parsing_is_exact() -> None:
    assert LocalCommand.parse("!help") is LocalCommand.HELP
    assert LocalCommand.parse("!help me") is None
    assert LocalCommand.parse("!HELP") is None
