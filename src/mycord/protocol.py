"""Fixed-size binary frame codec for the mycord chat protocol.

Every frame on the wire has the same layout, with integers in network byte
order and text fields padded with NUL bytes::

    offset  size  field
    0       4     kind       (uint32)
    4       4     timestamp  (uint32, Unix seconds truncated to 32 bits)
    8       32    sender     (NUL padded text, at most 31 visible bytes)
    40      1024  body       (NUL padded text, at most 1023 visible bytes)

There is no length prefix; peers agree on :data:`FRAME_SIZE` out of band.
"""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass
from enum import IntEnum


SENDER_CAPACITY = 32
BODY_CAPACITY = 1024
MAX_BODY_LENGTH = BODY_CAPACITY - 1
MAX_SENDER_LENGTH = SENDER_CAPACITY - 1

_FRAME_STRUCT = struct.Struct(f"!II{SENDER_CAPACITY}s{BODY_CAPACITY}s")
FRAME_SIZE = _FRAME_STRUCT.size

_PRINTABLE = range(32, 127)
_ESCAPE = 27


class ValidationError(ValueError):
    """Raised when outgoing text violates the printable/length rule."""


class ProtocolError(ValueError):
    """Raised when a received byte sequence cannot hold a complete frame."""


class FrameKind(IntEnum):
    """Message kinds and their numeric wire values."""

    LOGIN = 0
    LOGOUT = 1
    SEND = 2
    RECEIVE = 10
    DISCONNECT = 12
    SYSTEM = 13


@dataclass(frozen=True, slots=True)
class Frame:
    """Decoded representation of one wire frame.

    ``kind`` keeps the raw numeric value so that frames of kinds this client
    does not know about still decode; compare it against :class:`FrameKind`
    members or use :attr:`known_kind`.
    """

    kind: int
    timestamp: int
    sender: str
    body: str

    @property
    def known_kind(self) -> FrameKind | None:
        try:
            return FrameKind(self.kind)
        except ValueError:
            return None

    def to_bytes(self) -> bytes:
        """Pack the frame into exactly :data:`FRAME_SIZE` bytes."""

        return _FRAME_STRUCT.pack(
            self.kind & 0xFFFFFFFF,
            self.timestamp & 0xFFFFFFFF,
            _pack_text(self.sender, SENDER_CAPACITY),
            _pack_text(self.body, BODY_CAPACITY),
        )


def validate_body(text: str) -> str:
    """Return ``text`` when it may be sent as a chat body.

    The body must be non-empty, at most :data:`MAX_BODY_LENGTH` bytes and made
    of printable ASCII only (bytes 32 to 126, which also excludes ESC).
    """

    if not text:
        raise ValidationError("Message is empty")
    _check_printable(text)
    if len(text) > MAX_BODY_LENGTH:
        raise ValidationError("Message is too long to send")
    return text


def encode(
    kind: FrameKind | int,
    sender: str,
    body: str,
    *,
    timestamp: int | None = None,
) -> Frame:
    """Build a validated :class:`Frame` ready to be written to the peer."""

    validate_body(body)
    return _build_frame(kind, sender, body, timestamp)


def control_frame(
    kind: FrameKind | int,
    sender: str,
    body: str = "",
    *,
    timestamp: int | None = None,
) -> Frame:
    """Build a session-control frame (LOGIN/LOGOUT) whose body may be empty."""

    if body:
        _check_printable(body)
        if len(body) > MAX_BODY_LENGTH:
            raise ValidationError("Message is too long to send")
    return _build_frame(kind, sender, body, timestamp)


def decode(data: bytes) -> Frame:
    """Decode the first :data:`FRAME_SIZE` bytes of ``data`` into a frame."""

    if len(data) < FRAME_SIZE:
        raise ProtocolError(
            f"short frame: expected {FRAME_SIZE} bytes, received {len(data)}"
        )
    kind, timestamp, raw_sender, raw_body = _FRAME_STRUCT.unpack_from(data)
    return Frame(
        kind=kind,
        timestamp=timestamp,
        sender=_unpack_text(raw_sender),
        body=_unpack_text(raw_body),
    )


def current_timestamp() -> int:
    """Return the wall-clock time as Unix seconds truncated to 32 bits."""

    return int(time.time()) & 0xFFFFFFFF


# Internal helpers ---------------------------------------------------------


def _build_frame(
    kind: FrameKind | int, sender: str, body: str, timestamp: int | None
) -> Frame:
    if timestamp is None:
        timestamp = current_timestamp()
    sender_bytes = sender.encode("ascii", errors="replace")[:MAX_SENDER_LENGTH]
    return Frame(
        kind=int(kind),
        timestamp=timestamp & 0xFFFFFFFF,
        sender=sender_bytes.decode("ascii"),
        body=body,
    )


def _check_printable(text: str) -> None:
    for char in text:
        code = ord(char)
        if code == _ESCAPE or code not in _PRINTABLE:
            raise ValidationError("Cannot send non-ASCII characters")


def _pack_text(text: str, capacity: int) -> bytes:
    # The last byte of every text field stays NUL.
    raw = text.encode("ascii", errors="replace")[: capacity - 1]
    return raw.ljust(capacity, b"\x00")


def _unpack_text(raw: bytes) -> str:
    terminated = raw[: len(raw) - 1]
    end = terminated.find(b"\x00")
    if end != -1:
        terminated = terminated[:end]
    return terminated.decode("ascii", errors="replace")


__all__ = [
    "BODY_CAPACITY",
    "FRAME_SIZE",
    "Frame",
    "FrameKind",
    "MAX_BODY_LENGTH",
    "MAX_SENDER_LENGTH",
    "ProtocolError",
    "SENDER_CAPACITY",
    "ValidationError",
    "control_frame",
    "current_timestamp",
    "decode",
    "encode",
    "validate_body",
]
