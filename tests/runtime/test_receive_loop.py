"""Tests for the background receive loop."""

from __future__ import annotations

import random
from collections import deque
from typing import Iterable

from mycord.protocol import FRAME_SIZE, Frame, FrameKind, control_frame, encode
from mycord.runtime.context import SessionContext, TerminationReason
from mycord.runtime.flavor import UiMode
from mycord.runtime.receiver import HELP_HINT, FrameDeduplicator, ReceiveLoop, classify_frame
from mycord.runtime.scrollback import LineKind


class ScriptedConnection:
    """Return queued payloads from ``read_frame``; raise queued exceptions."""

    def __init__(self, reads: Iterable[bytes | BaseException]) -> None:
        self.reads = deque(reads)

    def read_frame(self) -> bytes:
        if not self.reads:
            return b""
        item = self.reads.popleft()
        if isinstance(item, BaseException):
            raise item
        return item


def _frame(kind: FrameKind, sender: str, body: str, timestamp: int = 0) -> bytes:
    return Frame(kind=int(kind), timestamp=timestamp, sender=sender, body=body).to_bytes()


def _run(reads: Iterable[bytes | BaseException], context: SessionContext | None = None) -> SessionContext:
    context = context or SessionContext("arbiter")
    ReceiveLoop(ScriptedConnection(reads), context, announce_help=False).run()  # type: ignore[arg-type]
    return context


def test_receive_frames_become_chat_lines() -> None:
    context = _run([_frame(FrameKind.RECEIVE, "johnson", "Hello, arbiter")])

    first, last = context.store.snapshot()
    assert first.kind is LineKind.RECEIVE
    assert (first.author, first.text) == ("johnson", "Hello, arbiter")
    assert last.text == "Server has disconnected"
    assert context.token.reason is TerminationReason.PEER_CLOSED


def test_identical_consecutive_frames_collapse_to_one_line() -> None:
    raw = _frame(FrameKind.RECEIVE, "keyes", "again")
    other = _frame(FrameKind.RECEIVE, "keyes", "different")

    context = _run([raw, raw, raw, other, raw])

    texts = [line.text for line in context.store.snapshot() if line.kind is LineKind.RECEIVE]
    assert texts == ["again", "different", "again"]


def test_disconnect_frame_stops_session() -> None:
    context = _run(
        [
            _frame(FrameKind.DISCONNECT, "server", "kicked"),
            _frame(FrameKind.RECEIVE, "never", "shown"),
        ]
    )

    lines = context.store.snapshot()
    assert len(lines) == 1
    assert lines[0].kind is LineKind.DISCONNECT
    assert "kicked" in lines[0].text
    assert not context.running
    assert context.token.reason is TerminationReason.REMOTE_DISCONNECT


def test_partial_frame_is_a_read_error() -> None:
    context = _run([b"\x00" * (FRAME_SIZE // 2)])

    (line,) = context.store.snapshot()
    assert line.text == "Could not read from server"
    assert context.token.reason is TerminationReason.READ_ERROR


def test_socket_error_is_a_read_error() -> None:
    context = _run([ConnectionResetError("reset by peer")])

    (line,) = context.store.snapshot()
    assert line.kind is LineKind.LOCAL
    assert context.token.reason is TerminationReason.READ_ERROR


def test_local_cancellation_exits_without_error_line() -> None:
    context = SessionContext("arbiter")
    context.stop(TerminationReason.LOCAL_COMMAND)

    loop = ReceiveLoop(ScriptedConnection([]), context)  # type: ignore[arg-type]
    loop.run()

    assert [line.text for line in context.store.snapshot()] == [HELP_HINT]
    assert context.token.reason is TerminationReason.LOCAL_COMMAND


def test_classify_maps_kinds_to_identities() -> None:
    context = SessionContext("arbiter")

    system = classify_frame(Frame(FrameKind.SYSTEM, 0, "srv", "maintenance"), context)
    unknown = classify_frame(Frame(42, 0, "srv", "future"), context)
    login = classify_frame(control_frame(FrameKind.LOGIN, "x", timestamp=0), context)

    assert (system.author, system.kind) == ("UNSC", LineKind.SYSTEM)
    assert (unknown.author, unknown.kind) == ("System", LineKind.UNTYPED)
    assert login.kind is LineKind.UNTYPED


def test_mentions_flagged_unless_quiet() -> None:
    frame = encode(FrameKind.RECEIVE, "cortana", "@arbiter stand by", timestamp=0)

    loud = classify_frame(frame, SessionContext("arbiter"))
    quiet = classify_frame(frame, SessionContext("arbiter", quiet=True))
    other = classify_frame(frame, SessionContext("guilty_spark"))

    assert loud.mention
    assert not quiet.mention
    assert not other.mention


def test_gravemind_mode_filters_chat_text() -> None:
    frame = encode(FrameKind.RECEIVE, "flood", "WE EXIST TOGETHER", timestamp=0)
    context = SessionContext("arbiter", mode=UiMode.GRAVEMIND)

    line = classify_frame(frame, context, rng=random.Random(3))

    assert line.text.replace(".", "") == "we exist together"


def test_deduplicator_remembers_only_previous_frame() -> None:
    dedup = FrameDeduplicator()

    assert not dedup.is_duplicate(b"a")
    assert dedup.is_duplicate(b"a")
    assert not dedup.is_duplicate(b"b")
    assert not dedup.is_duplicate(b"a")
