"""
Logging configuration — one-time setup for the hostforge CLI.

Every module logs through ``logging.getLogger(__name__)``; this module
decides where those records go. Diagnostic logging is separate from the
operation narrative (``OperationLog``), which is what callers read.

Level precedence:
    CLI flag  >  HOSTFORGE_LOG_LEVEL  >  WARNING

A diagnostic file can be added with HOSTFORGE_LOG_FILE (and
HOSTFORGE_LOG_FILE_LEVEL for a different threshold).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "HOSTFORGE_LOG_LEVEL"
ENV_FILE = "HOSTFORGE_LOG_FILE"
ENV_FILE_LEVEL = "HOSTFORGE_LOG_FILE_LEVEL"

# (format, datefmt) per console threshold
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers kept at WARNING unless we're debugging
_NOISY_LOGGERS = ("urllib3", "asyncio")


def resolve_level(cli_level: str | None = None) -> str:
    """Pick the effective level name from the CLI flag or the environment."""
    return cli_level or os.environ.get(ENV_LEVEL) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional diagnostic log file path.
        log_file_level: Threshold for the file; defaults to ``level``.
        quiet_third_party: Hold noisy library loggers at WARNING unless
            the console is at DEBUG.
    """
    console_level = _parse_level(level)
    bucket = max(k for k in _CONSOLE_FORMATS if k <= max(console_level, logging.DEBUG))
    fmt, datefmt = _CONSOLE_FORMATS[bucket]

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to numeric constant; unknown names fall back to WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
