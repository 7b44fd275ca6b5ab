"""Command-line entry point for the chat client."""

from __future__ import annotations

import argparse
import contextlib
import getpass
import ipaddress
import logging
import re
import signal
import socket
import subprocess
import sys
from pathlib import Path
from types import FrameType
from typing import IO, Callable, Iterator, Sequence, Tuple

from ..client_config import ClientConfig, ClientConfigError, load_client_config
from ..protocol import MAX_SENDER_LENGTH
from .announcer import AnnouncerLoop
from .console_ui import ChatConsoleApp, PlainConsole, ScreenRenderer
from .context import CancellationToken, SessionContext, TerminationReason
from .flavor import FAREWELL, UiMode
from .scrollback import ScrollbackStore
from .session import ChatSession, SessionPhase
from .terminal import KeyboardSource, raw_terminal


LOGGER = logging.getLogger(__name__)

DISPLAY_NAME_PATTERN = re.compile(rf"[A-Za-z0-9._-]{{1,{MAX_SENDER_LENGTH}}}")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class BootstrapError(RuntimeError):
    """Raised when the client cannot get as far as a running session."""


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port {value!r}") from exc
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError("port must be between 1 and 65535")
    return port


def _parse_ipv4(value: str) -> str:
    try:
        return str(ipaddress.IPv4Address(value))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid IPv4 address {value!r}") from exc


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Return parsed arguments for the chat client."""

    parser = argparse.ArgumentParser(prog="mycord", description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML file with client settings",
    )
    parser.add_argument(
        "--port",
        type=_parse_port,
        default=None,
        help="Server port (default: 8080)",
    )
    target_group = parser.add_mutually_exclusive_group()
    target_group.add_argument(
        "--ip",
        type=_parse_ipv4,
        default=None,
        help="Server IPv4 address (default: 127.0.0.1)",
    )
    target_group.add_argument(
        "--domain",
        default=None,
        help="Server host name, resolved to an IPv4 address",
    )
    parser.add_argument(
        "--username",
        default=None,
        help="Display name (default: output of whoami)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        default=None,
        help="Disable mention highlighting and the terminal bell",
    )
    parser.add_argument(
        "--tui",
        action="store_true",
        default=None,
        help="Use the full-screen interface instead of line mode",
    )
    parser.add_argument(
        "--gravemind",
        action="store_true",
        default=None,
        help="Start in Gravemind flavor mode",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging threshold (default: WARNING)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write log records to this file",
    )
    return parser.parse_args(argv)


# Bootstrap helpers ---------------------------------------------------------


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Merge the optional TOML file with command-line overrides."""

    config = load_client_config(args.config) if args.config is not None else ClientConfig()
    return config.with_overrides(
        host=args.ip or args.domain,
        port=args.port,
        username=args.username,
        quiet=args.quiet,
        tui=args.tui,
        mode=UiMode.GRAVEMIND.value if args.gravemind else None,
    )


def resolve_target(host: str, port: int) -> Tuple[str, int]:
    """Resolve ``host`` to an IPv4 address."""

    try:
        infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise BootstrapError(f"could not resolve {host!r}: {exc}") from exc
    if not infos:
        raise BootstrapError(f"no IPv4 address for {host!r}")
    address = infos[0][4]
    return address[0], int(address[1])


def _whoami() -> str | None:
    try:
        completed = subprocess.run(
            ["whoami"], capture_output=True, text=True, check=True, timeout=5
        )
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.debug("whoami failed: %s", exc)
        return None
    return completed.stdout.strip() or None


def resolve_display_name(
    explicit: str | None,
    *,
    lookup: Callable[[], str | None] = _whoami,
) -> str:
    """Pick the display name and check it against the allowed alphabet."""

    name = explicit or lookup()
    if not name:
        try:
            name = getpass.getuser()
        except (KeyError, OSError) as exc:
            raise BootstrapError("could not determine a display name") from exc
    if not DISPLAY_NAME_PATTERN.fullmatch(name):
        raise BootstrapError(
            f"invalid display name {name!r}: use 1-{MAX_SENDER_LENGTH} of A-Z a-z 0-9 . _ -"
        )
    return name


def configure_logging(level: str, log_file: Path | None, *, tui: bool) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if log_file is not None:
        logging.basicConfig(filename=str(log_file), level=level, format=LOG_FORMAT)
    elif tui:
        # Anything written to stderr would land in the middle of the screen.
        root.addHandler(logging.NullHandler())
        root.setLevel(level)
    else:
        logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT)


@contextlib.contextmanager
def cancel_on_signals(
    token: CancellationToken,
    signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[None]:
    """Route termination signals to ``token`` for the duration of the block."""

    def _handler(signum: int, frame: FrameType | None) -> None:
        token.cancel(TerminationReason.SIGNAL)

    previous = {signum: signal.signal(signum, _handler) for signum in signals}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def build_context(config: ClientConfig, display_name: str) -> SessionContext:
    return SessionContext(
        display_name=display_name,
        quiet=config.quiet,
        mode=UiMode(config.mode),
        store=ScrollbackStore(config.scrollback_lines),
    )


# Session drivers -----------------------------------------------------------


def _open_session(
    address: Tuple[str, int],
    context: SessionContext,
    config: ClientConfig,
) -> ChatSession:
    try:
        return ChatSession.connect(
            address,
            context,
            announcer=AnnouncerLoop(context, interval=config.announcer_interval),
        )
    except OSError as exc:
        raise BootstrapError(f"could not connect to {address[0]}:{address[1]}: {exc}") from exc


def _run(session: ChatSession, foreground: Callable[[ChatSession], object]) -> None:
    try:
        session.run(foreground)
    except ConnectionError as exc:
        if session.phase is not SessionPhase.CONNECTING:
            raise
        session.connection.close()
        raise BootstrapError(f"could not send LOGIN: {exc}") from exc


def run_tui(address: Tuple[str, int], context: SessionContext, config: ClientConfig) -> None:
    with raw_terminal():
        app = ChatConsoleApp(
            context,
            renderer=ScreenRenderer(context, target=f"{address[0]}:{address[1]}"),
            poll_interval=config.poll_interval,
            history_size=config.history_size,
        )
        if not app.start_menu():
            return
        session = _open_session(address, context, config)
        _run(session, app.run_foreground)


def run_plain(address: Tuple[str, int], context: SessionContext, config: ClientConfig) -> None:
    session = _open_session(address, context, config)
    console = PlainConsole(
        context,
        keyboard=KeyboardSource(),
        poll_interval=config.poll_interval,
        history_size=config.history_size,
    )
    _run(session, console.run_foreground)


def _write_and_flush(stream: IO[str], text: str) -> None:
    stream.write(text)
    stream.flush()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the chat client; returns the process exit status."""

    args = parse_args(argv)
    try:
        config = build_config(args)
        configure_logging(args.log_level, args.log_file, tui=config.tui)
        address = resolve_target(config.host, config.port)
        display_name = resolve_display_name(config.username)
    except (BootstrapError, ClientConfigError) as exc:
        _write_and_flush(sys.stderr, f"Error: {exc}\n")
        return 1

    context = build_context(config, display_name)
    LOGGER.info("connecting to %s:%d as %s", address[0], address[1], display_name)
    try:
        with cancel_on_signals(context.token):
            if config.tui:
                run_tui(address, context, config)
            else:
                run_plain(address, context, config)
    except BootstrapError as exc:
        _write_and_flush(sys.stderr, f"Error: {exc}\n")
        return 1
    reason = context.token.reason
    LOGGER.info("session ended (%s)", reason.name if reason else "menu")
    _write_and_flush(sys.stdout, FAREWELL[context.mode] + "\n")
    return 0


__all__ = [
    "BootstrapError",
    "DISPLAY_NAME_PATTERN",
    "build_config",
    "configure_logging",
    "main",
    "parse_args",
    "resolve_display_name",
    "resolve_target",
]
