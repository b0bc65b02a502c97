"""Logging configuration for the TaskPilot CLI."""

import logging
from enum import IntEnum

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


# aiohttp loggers and the level they keep unless running at -vv/--debug
NOISY_LOGGERS = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.INFO,
    "aiohttp.client": logging.INFO,
    "aiohttp.websocket": logging.INFO,
}


def resolve_level(verbosity: int = 0, quiet: bool = False, debug: bool = False) -> LogLevel:
    """Map CLI flags to a log level. Precedence: quiet > debug > verbosity."""
    if quiet:
        return LogLevel.QUIET
    if debug or verbosity >= 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    debug: bool = False,
) -> Console:
    """Configure logging based on CLI options.

    Logs and human-readable output share one stderr console so that
    ``--json`` documents on stdout stay machine-parseable.

    Args:
        verbosity: Number of -v flags (1 = arbitration details, 2+ = also
            aiohttp internals and log source locations)
        quiet: Only warnings and errors
        no_color: Disable colored output
        debug: Same as -vv

    Returns:
        Configured Rich console for output
    """
    level = resolve_level(verbosity, quiet, debug)
    trace = debug or verbosity >= 2

    console = Console(
        stderr=True,
        force_terminal=not no_color,
        no_color=no_color,
    )
    handler = RichHandler(
        console=console,
        show_time=trace,
        show_path=trace,
        markup=False,
        rich_tracebacks=trace,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    for name, floor in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(logging.NOTSET if trace else max(floor, level))

    return console
