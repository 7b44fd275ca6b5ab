"""Background loop that injects flavor quotes while gravemind mode is active."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Sequence, Tuple

from .context import SessionContext
from .flavor import ANNOUNCER_IDENTITY, GRAVEMIND_QUOTES, UiMode
from .scrollback import DisplayLine, LineKind, format_time_label


LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL: Tuple[float, float] = (7.0, 15.0)


class AnnouncerLoop:
    """Second concurrent producer for the scrollback store."""

    def __init__(
        self,
        context: SessionContext,
        *,
        interval: Tuple[float, float] = DEFAULT_INTERVAL,
        quotes: Sequence[str] = GRAVEMIND_QUOTES,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        low, high = interval
        if not 0 < low <= high:
            raise ValueError("announcer interval must satisfy 0 < low <= high")
        if not quotes:
            raise ValueError("announcer requires at least one quote")
        self.context = context
        self.interval = (float(low), float(high))
        self.quotes = tuple(quotes)
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock

    def next_delay(self) -> float:
        return self._rng.uniform(*self.interval)

    def run(self) -> None:
        token = self.context.token
        while token.running:
            # The token wakes the wait as soon as the session is cancelled.
            if token.wait(self.next_delay()):
                break
            self.emit_once()
        LOGGER.debug("announcer loop exiting")

    def emit_once(self) -> DisplayLine | None:
        """Append one quote when flavor mode allows it and return the line."""

        context = self.context
        if context.mode is not UiMode.GRAVEMIND or not context.announcements_enabled:
            LOGGER.debug("announcer idle in %s mode", context.mode.value)
            return None
        line = DisplayLine(
            time_label=format_time_label(self._clock()),
            author=ANNOUNCER_IDENTITY,
            text=self._rng.choice(self.quotes),
            kind=LineKind.SYSTEM,
        )
        context.store.append(line)
        return line


__all__ = ["AnnouncerLoop", "DEFAULT_INTERVAL"]
