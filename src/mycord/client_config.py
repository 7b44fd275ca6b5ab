"""Load client settings from TOML files."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import tomllib


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_SCROLLBACK_LINES = 600
DEFAULT_HISTORY_SIZE = 64
DEFAULT_POLL_INTERVAL = 0.075
DEFAULT_ANNOUNCER_INTERVAL = (7.0, 15.0)

VALID_MODES = ("spartan", "gravemind")


class ClientConfigError(ValueError):
    """Raised when a client configuration file fails validation."""


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Settings consumed by the bootstrap and the session engine."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str | None = None
    quiet: bool = False
    tui: bool = False
    mode: str = "spartan"
    scrollback_lines: int = DEFAULT_SCROLLBACK_LINES
    history_size: int = DEFAULT_HISTORY_SIZE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    announcer_min_interval: float = DEFAULT_ANNOUNCER_INTERVAL[0]
    announcer_max_interval: float = DEFAULT_ANNOUNCER_INTERVAL[1]

    def __post_init__(self) -> None:
        _check_port(self.port)
        if self.mode not in VALID_MODES:
            raise ClientConfigError(
                f"mode must be one of {', '.join(VALID_MODES)}, received {self.mode!r}"
            )
        if self.scrollback_lines < 1:
            raise ClientConfigError("display.scrollback_lines must be positive")
        if self.history_size < 1:
            raise ClientConfigError("display.history_size must be positive")
        if self.poll_interval <= 0:
            raise ClientConfigError("display.poll_interval must be positive")
        if not 0 < self.announcer_min_interval <= self.announcer_max_interval:
            raise ClientConfigError(
                "announcer intervals must satisfy 0 < min_interval <= max_interval"
            )

    @property
    def announcer_interval(self) -> tuple[float, float]:
        return (self.announcer_min_interval, self.announcer_max_interval)

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        """Return a copy with every non-``None`` override applied."""

        known = {item.name for item in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"unknown configuration fields: {sorted(unknown)}")
        applied = {key: value for key, value in overrides.items() if value is not None}
        if not applied:
            return self
        return replace(self, **applied)


def load_client_config(config_path: Path) -> ClientConfig:
    """Parse and validate the TOML configuration at ``config_path``."""

    try:
        with config_path.open("rb") as stream:
            data = tomllib.load(stream)
    except tomllib.TOMLDecodeError as exc:
        raise ClientConfigError(f"{config_path}: {exc}") from exc
    except OSError as exc:
        raise ClientConfigError(f"cannot read {config_path}: {exc.strerror or exc}") from exc

    values: Dict[str, Any] = {}
    values.update(_parse_server_section(_table(data, "server")))
    values.update(_parse_client_section(_table(data, "client")))
    values.update(_parse_display_section(_table(data, "display")))
    values.update(_parse_announcer_section(_table(data, "announcer")))
    return ClientConfig(**values)


def _table(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ClientConfigError(f"[{name}] section must be a table")
    return section


def _parse_server_section(section: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "host" in section:
        host = section["host"]
        if not isinstance(host, str) or not host.strip():
            raise ClientConfigError("server.host must be a non-empty string")
        values["host"] = host.strip()
    if "port" in section:
        values["port"] = _coerce_int(section["port"], "server.port")
    return values


def _parse_client_section(section: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "username" in section:
        username = section["username"]
        if not isinstance(username, str):
            raise ClientConfigError("client.username must be a string")
        values["username"] = username
    for flag in ("quiet", "tui"):
        if flag in section:
            raw = section[flag]
            if not isinstance(raw, bool):
                raise ClientConfigError(f"client.{flag} must be a boolean")
            values[flag] = raw
    if "mode" in section:
        mode = section["mode"]
        if not isinstance(mode, str):
            raise ClientConfigError("client.mode must be a string")
        values["mode"] = mode.strip().lower()
    return values


def _parse_display_section(section: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "scrollback_lines" in section:
        values["scrollback_lines"] = _coerce_int(
            section["scrollback_lines"], "display.scrollback_lines"
        )
    if "history_size" in section:
        values["history_size"] = _coerce_int(
            section["history_size"], "display.history_size"
        )
    if "poll_interval" in section:
        values["poll_interval"] = _coerce_float(
            section["poll_interval"], "display.poll_interval"
        )
    return values


def _parse_announcer_section(section: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "min_interval" in section:
        values["announcer_min_interval"] = _coerce_float(
            section["min_interval"], "announcer.min_interval"
        )
    if "max_interval" in section:
        values["announcer_max_interval"] = _coerce_float(
            section["max_interval"], "announcer.max_interval"
        )
    return values


def _coerce_int(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise ClientConfigError(f"{name} must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip(), base=10)
        except ValueError as exc:
            raise ClientConfigError(f"{name} must be an integer") from exc
    raise ClientConfigError(f"{name} must be an integer")


def _coerce_float(raw: Any, name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ClientConfigError(f"{name} must be a number")
    return float(raw)


def _check_port(port: int) -> None:
    if not 0 < port <= 65535:
        raise ClientConfigError(f"port {port} outside supported range 1-65535")


__all__ = [
    "ClientConfig",
    "ClientConfigError",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "load_client_config",
]
