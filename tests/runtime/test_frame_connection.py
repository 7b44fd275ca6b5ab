"""Unit tests covering the frame-level socket transport."""

from __future__ import annotations

import socket
import threading

import pytest

from mycord.protocol import FRAME_SIZE, FrameKind, decode, encode
from mycord.runtime.transports import FrameConnection


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    try:
        yield FrameConnection(left), right
    finally:
        left.close()
        right.close()


def test_send_frame_writes_exactly_one_frame(pair) -> None:
    connection, peer = pair
    frame = encode(FrameKind.SEND, "noble6", "reach", timestamp=9)

    connection.send_frame(frame)

    data = peer.recv(FRAME_SIZE * 2)
    assert len(data) == FRAME_SIZE
    assert decode(data) == frame


def test_read_frame_reassembles_split_writes(pair) -> None:
    connection, peer = pair
    raw = encode(FrameKind.RECEIVE, "kat", "split across writes", timestamp=1).to_bytes()

    def writer() -> None:
        for offset in range(0, FRAME_SIZE, 100):
            peer.sendall(raw[offset : offset + 100])

    thread = threading.Thread(target=writer)
    thread.start()
    data = connection.read_frame()
    thread.join()

    assert data == raw


def test_read_frame_returns_short_data_when_peer_closes(pair) -> None:
    connection, peer = pair
    peer.sendall(b"\x00" * 10)
    peer.shutdown(socket.SHUT_WR)

    assert connection.read_frame() == b"\x00" * 10
    assert connection.read_frame() == b""


def test_shutdown_unblocks_pending_read(pair) -> None:
    connection, _peer = pair
    result: list[bytes] = []
    reader = threading.Thread(target=lambda: result.append(connection.read_frame()))
    reader.start()

    connection.shutdown()
    reader.join(2.0)

    assert not reader.is_alive()
    assert result == [b""]


def test_close_is_idempotent_and_blocks_writes(pair) -> None:
    connection, _peer = pair

    connection.close()
    connection.close()
    connection.shutdown()

    assert connection.closed
    with pytest.raises(ConnectionError):
        connection.send_bytes(b"late")


def test_write_to_closed_peer_raises_connection_error(pair) -> None:
    connection, peer = pair
    peer.close()

    with pytest.raises(ConnectionError):
        connection.send_bytes(b"x" * FRAME_SIZE)
