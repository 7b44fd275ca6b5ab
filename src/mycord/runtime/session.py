"""Session lifecycle: login, worker threads and idempotent teardown."""

from __future__ import annotations

import logging
import threading
from enum import Enum, auto
from typing import Callable, Tuple

from ..protocol import FrameKind, control_frame, encode
from .announcer import AnnouncerLoop
from .context import SessionContext, TerminationReason
from .receiver import ReceiveLoop
from .transports import FrameConnection


LOGGER = logging.getLogger(__name__)

LOGOUT_NOTICE = "User has disconnected"
DEFAULT_JOIN_TIMEOUT = 5.0


class SessionPhase(Enum):
    """Lifecycle phases of a :class:`ChatSession`."""

    CONNECTING = auto()
    LOGGED_IN = auto()
    RUNNING = auto()
    TERMINATING = auto()
    CLOSED = auto()


class ChatSession:
    """Own the connection and the worker threads of one chat session.

    Only the foreground thread writes to the connection (chat messages and the
    final LOGOUT); only the receive thread reads from it.
    """

    def __init__(
        self,
        connection: FrameConnection,
        context: SessionContext,
        *,
        receiver: ReceiveLoop | None = None,
        announcer: AnnouncerLoop | None = None,
        join_timeout: float | None = DEFAULT_JOIN_TIMEOUT,
    ) -> None:
        self.connection = connection
        self.context = context
        self.receiver = receiver or ReceiveLoop(connection, context)
        self.announcer = announcer or AnnouncerLoop(context)
        self.join_timeout = join_timeout
        self.phase = SessionPhase.CONNECTING
        self._threads: list[threading.Thread] = []
        self._close_lock = threading.Lock()
        self._logout_sent = False

    @classmethod
    def connect(
        cls,
        address: Tuple[str, int],
        context: SessionContext,
        *,
        timeout: float | None = 10.0,
        **kwargs: object,
    ) -> "ChatSession":
        """Open a stream to ``address`` and wrap it in a session."""

        connection = FrameConnection.open(address, timeout=timeout)
        return cls(connection, context, **kwargs)  # type: ignore[arg-type]

    # Lifecycle ------------------------------------------------------------

    def login(self) -> None:
        """Send the LOGIN frame; raise :class:`ConnectionError` on failure."""

        if self.phase is not SessionPhase.CONNECTING:
            raise RuntimeError(f"cannot log in from phase {self.phase.name}")
        frame = control_frame(FrameKind.LOGIN, self.context.display_name)
        self.connection.send_frame(frame)
        self.phase = SessionPhase.LOGGED_IN
        LOGGER.info("logged in as %s", self.context.display_name)

    def start(self) -> None:
        """Launch the receive and announcer threads."""

        if self.phase is not SessionPhase.LOGGED_IN:
            raise RuntimeError(f"cannot start from phase {self.phase.name}")
        for name, target in (
            ("mycord-receive", self.receiver.run),
            ("mycord-announcer", self.announcer.run),
        ):
            thread = threading.Thread(target=target, name=name, daemon=True)
            self._threads.append(thread)
            thread.start()
        self.phase = SessionPhase.RUNNING

    def run(self, foreground: Callable[["ChatSession"], object]) -> TerminationReason | None:
        """Log in, start the workers, drive ``foreground`` and tear down."""

        self.login()
        try:
            self.start()
            foreground(self)
        finally:
            self.close()
        return self.context.token.reason

    def request_stop(self, reason: TerminationReason) -> bool:
        return self.context.stop(reason)

    @property
    def running(self) -> bool:
        return self.context.running

    # Foreground writes ----------------------------------------------------

    def send_message(self, text: str) -> bool:
        """Encode ``text`` as a SEND frame and write it.

        Raises :class:`ValidationError` for invalid text. A write failure is
        reported in-band and terminates the session; ``False`` is returned.
        """

        frame = encode(FrameKind.SEND, self.context.display_name, text)
        try:
            self.connection.send_frame(frame)
        except ConnectionError as exc:
            LOGGER.warning("write failed: %s", exc)
            self.context.store.add_local("ERROR", "Write error - connection lost")
            self.request_stop(TerminationReason.WRITE_ERROR)
            return False
        return True

    # Teardown -------------------------------------------------------------

    def close(self) -> None:
        """Stop the session exactly once; later calls return immediately."""

        with self._close_lock:
            if self.phase in (SessionPhase.TERMINATING, SessionPhase.CLOSED):
                return
            self.phase = SessionPhase.TERMINATING
        context = self.context
        context.stop(TerminationReason.LOCAL_COMMAND)
        reason = context.token.reason
        LOGGER.info("terminating session (%s)", reason.name if reason else "unknown")
        if reason is None or reason.sends_logout:
            self._send_logout()
        self.connection.shutdown()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(self.join_timeout)
                if thread.is_alive():
                    LOGGER.warning("%s did not stop within %ss", thread.name, self.join_timeout)
        self.connection.close()
        self.phase = SessionPhase.CLOSED

    def _send_logout(self) -> None:
        if self._logout_sent:
            return
        self._logout_sent = True
        frame = control_frame(FrameKind.LOGOUT, self.context.display_name, LOGOUT_NOTICE)
        try:
            self.connection.send_frame(frame)
        except ConnectionError as exc:
            LOGGER.debug("best-effort LOGOUT failed: %s", exc)


__all__ = [
    "ChatSession",
    "LOGOUT_NOTICE",
    "SessionPhase",
]
