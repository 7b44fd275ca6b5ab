"""Receive loop: read frames from the peer and publish them as lines."""

from __future__ import annotations

import logging
import random

from ..protocol import Frame, FrameKind, ProtocolError, decode
from .context import SessionContext, TerminationReason
from .flavor import SERVER_IDENTITY, UiMode, gravemind_filter, mentions
from .scrollback import DisplayLine, LineKind, format_time_label
from .transports import FrameConnection


LOGGER = logging.getLogger(__name__)

HELP_HINT = "Type '!help' for available commands"


class FrameDeduplicator:
    """Drop a frame whose raw bytes equal the immediately preceding frame.

    Only one previous frame is remembered, so a run of identical frames
    collapses to a single frame while ``A B A`` passes through untouched.
    """

    def __init__(self) -> None:
        self._last: bytes | None = None

    def is_duplicate(self, raw: bytes) -> bool:
        if raw == self._last:
            return True
        self._last = raw
        return False


def classify_frame(
    frame: Frame,
    context: SessionContext,
    *,
    rng: random.Random | None = None,
) -> DisplayLine:
    """Map a decoded frame onto the :class:`DisplayLine` it is shown as."""

    time_label = format_time_label(frame.timestamp)
    kind = LineKind.for_frame_kind(frame.kind)
    if kind is LineKind.RECEIVE:
        text = frame.body
        if context.mode is UiMode.GRAVEMIND:
            text = gravemind_filter(text, rng)
        return DisplayLine(
            time_label=time_label,
            author=frame.sender,
            text=text,
            kind=kind,
            mention=not context.quiet and mentions(frame.body, context.display_name),
        )
    if kind is LineKind.SYSTEM:
        return DisplayLine(time_label, SERVER_IDENTITY, frame.body, kind)
    if kind is LineKind.DISCONNECT:
        return DisplayLine(time_label, "DISCONNECT", frame.body, kind)
    return DisplayLine(time_label, "System", frame.body, LineKind.UNTYPED)


class ReceiveLoop:
    """Thread body that owns the read side of the connection."""

    def __init__(
        self,
        connection: FrameConnection,
        context: SessionContext,
        *,
        rng: random.Random | None = None,
        announce_help: bool = True,
    ) -> None:
        self.connection = connection
        self.context = context
        self._rng = rng
        self._announce_help = announce_help
        self._deduplicator = FrameDeduplicator()

    def run(self) -> None:
        context = self.context
        store = context.store
        if self._announce_help:
            store.add_local("CORTANA", HELP_HINT)
        while context.running:
            try:
                raw = self.connection.read_frame()
            except OSError as exc:
                if context.token.cancelled:
                    break
                LOGGER.warning("read from server failed: %s", exc)
                store.add_local("ERROR", "Could not read from server")
                context.stop(TerminationReason.READ_ERROR)
                break
            if context.token.cancelled:
                # Local teardown half-closed the socket underneath the read.
                break
            if not raw:
                LOGGER.info("server closed the connection")
                store.add_local("UNSC", "Server has disconnected")
                context.stop(TerminationReason.PEER_CLOSED)
                break
            try:
                frame = decode(raw)
            except ProtocolError as exc:
                LOGGER.warning("protocol error: %s", exc)
                store.add_local("ERROR", "Could not read from server")
                context.stop(TerminationReason.READ_ERROR)
                break
            self.handle_frame(raw, frame)
        LOGGER.debug("receive loop exiting")

    def handle_frame(self, raw: bytes, frame: Frame) -> DisplayLine | None:
        """Deduplicate, classify and publish one frame."""

        if self._deduplicator.is_duplicate(raw):
            LOGGER.debug("dropping duplicate frame of kind %d", frame.kind)
            return None
        line = classify_frame(frame, self.context, rng=self._rng)
        self.context.store.append(line)
        if frame.kind == FrameKind.DISCONNECT:
            LOGGER.info("server requested disconnect: %s", frame.body)
            self.context.stop(TerminationReason.REMOTE_DISCONNECT)
        return line


__all__ = [
    "FrameDeduplicator",
    "HELP_HINT",
    "ReceiveLoop",
    "classify_frame",
]
