"""Shared session state handed to every worker loop at startup."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto

from .flavor import UiMode
from .scrollback import DirtyFlag, ScrollbackStore


class TerminationReason(Enum):
    """Why a session stopped running."""

    LOCAL_COMMAND = auto()
    REMOTE_DISCONNECT = auto()
    PEER_CLOSED = auto()
    READ_ERROR = auto()
    WRITE_ERROR = auto()
    SIGNAL = auto()
    INPUT_EOF = auto()

    @property
    def sends_logout(self) -> bool:
        """Whether teardown should still write a LOGOUT frame."""

        return self not in _NO_LOGOUT_REASONS


_NO_LOGOUT_REASONS = frozenset(
    {
        TerminationReason.REMOTE_DISCONNECT,
        TerminationReason.READ_ERROR,
        TerminationReason.WRITE_ERROR,
    }
)


class CancellationToken:
    """Cooperative replacement for the shared ``running`` flag.

    The first call to :meth:`cancel` records its reason; later calls are
    ignored. Safe to call from worker threads and from signal handlers.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.RLock()
        self._reason: TerminationReason | None = None

    def cancel(self, reason: TerminationReason) -> bool:
        """Request termination; return ``True`` if this call was the first."""

        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def running(self) -> bool:
        return not self._event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> TerminationReason | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` seconds; return ``True`` once cancelled."""

        return self._event.wait(timeout)


@dataclass(slots=True)
class SessionContext:
    """Explicit replacement for the process-wide client settings."""

    display_name: str
    quiet: bool = False
    mode: UiMode = UiMode.SPARTAN
    store: ScrollbackStore = field(default_factory=ScrollbackStore)
    token: CancellationToken = field(default_factory=CancellationToken)
    # Cleared while the start menu is showing.
    announcements_enabled: bool = True

    @property
    def dirty(self) -> DirtyFlag:
        return self.store.dirty

    @property
    def running(self) -> bool:
        return self.token.running

    def stop(self, reason: TerminationReason) -> bool:
        stopped = self.token.cancel(reason)
        self.store.dirty.mark()
        return stopped


__all__ = [
    "CancellationToken",
    "SessionContext",
    "TerminationReason",
]
