"""Runtime modules exposed by the mycord package."""
from __future__ import annotations

from . import announcer as _announcer
from . import console_ui as _console_ui
from . import context as _context
from . import flavor as _flavor
from . import input_state as _input_state
from . import receiver as _receiver
from . import scrollback as _scrollback
from . import session as _session
from . import terminal as _terminal
from . import transports as _transports

_modules = [
    _announcer,
    _console_ui,
    _context,
    _flavor,
    _input_state,
    _receiver,
    _scrollback,
    _session,
    _terminal,
    _transports,
]

__all__: list[str] = []
_seen: set[str] = set()
for _module in _modules:
    for _name in _module.__all__:
        if _name not in _seen:
            _seen.add(_name)
            __all__.append(_name)
        globals()[_name] = getattr(_module, _name)


def __dir__() -> list[str]:
    return sorted(__all__)
