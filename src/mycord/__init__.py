"""Public API of the mycord chat client."""
from __future__ import annotations

from . import client_config as _client_config
from . import protocol as _protocol

__all__: list[str] = []
for _module in (_protocol, _client_config):
    for _name in _module.__all__:
        globals()[_name] = getattr(_module, _name)
        __all__.append(_name)
