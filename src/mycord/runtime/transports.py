"""Frame-level transport over a connected stream socket."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Tuple

from ..protocol import FRAME_SIZE, Frame


LOGGER = logging.getLogger(__name__)


class FrameConnection:
    """Wrap a stream socket with fixed-size frame reads and writes.

    The socket is used in split full-duplex fashion: one thread calls
    :meth:`read_frame`, another calls :meth:`send_frame`. :meth:`shutdown` and
    :meth:`close` may be called repeatedly from any thread.
    """

    def __init__(self, sock: socket.socket, *, frame_size: int = FRAME_SIZE) -> None:
        self.sock = sock
        self.frame_size = frame_size
        self._state_lock = threading.Lock()
        self._shutdown = False
        self._closed = False

    @classmethod
    def open(
        cls, address: Tuple[str, int], *, timeout: float | None = 10.0
    ) -> "FrameConnection":
        """Connect to ``address`` and return a blocking frame connection."""

        sock = socket.create_connection(address, timeout=timeout)
        # Reads must block until the peer sends or the socket is shut down.
        sock.settimeout(None)
        LOGGER.info("connected to %s:%d", *address)
        return cls(sock)

    # Writer side ----------------------------------------------------------

    def send_frame(self, frame: Frame) -> None:
        """Write ``frame`` in full or raise :class:`ConnectionError`."""

        self.send_bytes(frame.to_bytes())

    def send_bytes(self, payload: bytes) -> None:
        if self._closed:
            raise ConnectionError("connection is closed")
        while True:
            try:
                self.sock.sendall(payload)
                return
            except InterruptedError:
                continue
            except ConnectionError:
                raise
            except OSError as exc:
                raise ConnectionError(f"write failed: {exc}") from exc

    # Reader side ----------------------------------------------------------

    def read_frame(self) -> bytes:
        """Read one frame worth of bytes.

        Returns fewer than :attr:`frame_size` bytes only when the peer closed
        the stream mid-frame (or before sending anything, giving ``b""``).
        Socket errors propagate as :class:`OSError`.
        """

        chunks: list[bytes] = []
        received = 0
        while received < self.frame_size:
            try:
                chunk = self.sock.recv(self.frame_size - received)
            except InterruptedError:
                continue
            if not chunk:
                break
            chunks.append(chunk)
            received += len(chunk)
        return b"".join(chunks)

    # Teardown -------------------------------------------------------------

    def shutdown(self) -> None:
        """Half-close both directions, waking a reader blocked in ``recv``."""

        with self._state_lock:
            if self._shutdown or self._closed:
                return
            self._shutdown = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            LOGGER.debug("socket shutdown failed: %s", exc)

    def close(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        self.sock.close()

    @property
    def closed(self) -> bool:
        return self._closed


__all__ = ["FrameConnection"]
