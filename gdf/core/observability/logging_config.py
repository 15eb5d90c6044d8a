"""
Logging configuration — set up once by the CLI entrypoint.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
what is configured here.

Console level precedence:
    --debug  >  --verbose  >  --quiet  >  GDF_LOG_LEVEL  >  WARNING

A second, file-backed handler is added when GDF_LOG_FILE is set; its
level comes from GDF_LOG_FILE_LEVEL (falls back to the console level).
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV_VAR = "GDF_LOG_LEVEL"
FILE_ENV_VAR = "GDF_LOG_FILE"
FILE_LEVEL_ENV_VAR = "GDF_LOG_FILE_LEVEL"

DEFAULT_LEVEL = "WARNING"

# ── Formats ─────────────────────────────────────────────────────

# (threshold, format, datefmt): first row whose threshold >= level wins
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
]

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(process)d] %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    for flag, name in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if flag:
            return name
    return os.environ.get(LEVEL_ENV_VAR, DEFAULT_LEVEL)


def level_number(name: str | None) -> int:
    """Numeric level for *name*; empty or unknown names mean WARNING."""
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for limit, f, d in _CONSOLE_FORMATS if level <= limit)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers for this process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of a log file.
        log_file_level: Level for the file handler. Defaults to ``level``.
    """
    console_level = level_number(level)
    handlers = [_console_handler(console_level)]
    if log_file:
        file_level = level_number(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # Root must pass everything the most verbose handler wants
    root.setLevel(min(h.level for h in handlers))

    # Writes to a closed stream (CliRunner, closed pipe) are dropped silently
    logging.raiseExceptions = False


def setup_from_environment(level: str) -> None:
    """``setup_logging`` with file output taken from GDF_LOG_FILE*."""
    setup_logging(
        level=level,
        log_file=os.environ.get(FILE_ENV_VAR),
        log_file_level=os.environ.get(FILE_LEVEL_ENV_VAR),
    )
