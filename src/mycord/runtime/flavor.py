"""Cosmetic flavor mode: themed lines, quotes and the gravemind text filter.

Nothing in this module influences the wire protocol; it only decides what the
scrollback shows.
"""

from __future__ import annotations

import random
from enum import Enum
from typing import Sequence, Tuple


class UiMode(Enum):
    """Theme selected with ``!spartan``/``!gravemind`` or the start menu."""

    SPARTAN = "spartan"
    GRAVEMIND = "gravemind"

    @property
    def title(self) -> str:
        return self.name

    def toggled(self) -> "UiMode":
        return UiMode.SPARTAN if self is UiMode.GRAVEMIND else UiMode.GRAVEMIND


SERVER_IDENTITY = "UNSC"
ANNOUNCER_IDENTITY = "GRAVEMIND"

GRAVEMIND_QUOTES: Tuple[str, ...] = (
    "I am a monument to all your sins.",
    "There is much talk, and I have listened.",
    "Now I shall talk, and you shall listen.",
    "The nodes will join. They always do.",
    "Your will is not your own. Not for long.",
    "Signal accepted. Pattern spreading.",
    "Do not be afraid. I am peace. I am salvation.",
    "We exist together now. Two corpses in one grave.",
    "Resignation is my virtue. Like water I ebb and flow.",
    "Time has taught me patience.",
    "Child of my enemy, why have you come?",
    "This one is machine and nerve, and has its mind concluded.",
    "Fate had us meet as foes, but this ring will make us brothers.",
    "I have beaten fleets of thousands! Consumed a galaxy of flesh and mind and bone!",
    "We trade one villain for another.",
    "Do I take life or give it? Who is victim and who is foe?",
    "I am the heart of this world. Its beat thunders through my veins.",
    "Your history is an appalling chronicle of betrayal.",
)

BOOT_LINES: dict[UiMode, Tuple[Tuple[str, str], ...]] = {
    UiMode.GRAVEMIND: (
        ("GRAVEMIND", ">>> NEURAL SIGNAL DETECTED"),
        ("GRAVEMIND", ">>> FLOOD SPORE INTEGRATION INITIATED"),
        ("GRAVEMIND", ">>> MEMORY BLEED CONFIRMED"),
        ("GRAVEMIND", ">>> CORRUPTION STABLE. SPREADING..."),
        ("GRAVEMIND", "I am a monument to all your sins."),
        ("GRAVEMIND", ">>> GRAVEMIND NEURAL NETWORK ONLINE"),
    ),
    UiMode.SPARTAN: (
        ("UNSC", ">>> SPARTAN-III NEURAL INTERFACE INITIALIZED"),
        ("UNSC", ">>> MJOLNIR ARMOR SYSTEMS ONLINE"),
        ("UNSC", ">>> NEURAL LINK STABLE"),
        ("CORTANA", "I'll be with you every step of the way."),
        ("UNSC", ">>> SPARTAN COMMUNICATIONS ONLINE"),
    ),
}

SWITCH_NOTICES: dict[UiMode, Tuple[str, str]] = {
    UiMode.GRAVEMIND: ("GRAVEMIND", "Switching to Gravemind interface..."),
    UiMode.SPARTAN: ("UNSC", "Switching to Spartan interface..."),
}

FAREWELL = {
    UiMode.GRAVEMIND: "I am a monument to all your sins.",
    UiMode.SPARTAN: "Spartans never die...",
}


def gravemind_filter(text: str, rng: random.Random | None = None) -> str:
    """Lower-case ``text`` and sprinkle ``.`` after roughly 1 in 6 alphanumerics."""

    chooser = rng if rng is not None else random
    pieces: list[str] = []
    for char in text.lower():
        pieces.append(char)
        if char.isascii() and char.isalnum() and chooser.randrange(6) == 0:
            pieces.append(".")
    return "".join(pieces)


def mention_token(display_name: str) -> str:
    return f"@{display_name}"


def mentions(text: str, display_name: str) -> bool:
    """Return ``True`` when ``text`` addresses ``display_name`` with ``@``."""

    if not display_name:
        return False
    return mention_token(display_name) in text


def split_mentions(text: str, display_name: str) -> Sequence[Tuple[str, bool]]:
    """Split ``text`` into ``(chunk, is_mention)`` pairs for highlighting."""

    if not mentions(text, display_name):
        return ((text, False),) if text else ()
    token = mention_token(display_name)
    parts: list[Tuple[str, bool]] = []
    remaining = text
    while True:
        index = remaining.find(token)
        if index == -1:
            if remaining:
                parts.append((remaining, False))
            return tuple(parts)
        if index:
            parts.append((remaining[:index], False))
        parts.append((token, True))
        remaining = remaining[index + len(token) :]


__all__ = [
    "ANNOUNCER_IDENTITY",
    "BOOT_LINES",
    "FAREWELL",
    "GRAVEMIND_QUOTES",
    "SERVER_IDENTITY",
    "SWITCH_NOTICES",
    "UiMode",
    "gravemind_filter",
    "mentions",
    "split_mentions",
]
