"""
Logging setup for the provisioner CLI.

``main.py`` calls ``setup_logging`` once per process; modules log through
``logging.getLogger(__name__)`` and inherit it.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  PROVISION_LOG_LEVEL  >  WARNING

A run changes the host as root, so PROVISION_LOG_FILE can keep a
record of it. The file handler has its own level
(PROVISION_LOG_FILE_LEVEL, default: the console level) and always uses
the detailed format.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"

# level threshold -> (format, datefmt); first match wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, optionally, a file handler.

    Replaces any handlers already on the root logger, so repeated calls
    (as with CliRunner in tests) do not duplicate output.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Append the run log to this file.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    fmt, datefmt = next(
        (f, d) for threshold, f, d in _CONSOLE_FORMATS if console_level <= threshold
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_DETAILED, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False

    if log_file:
        logging.getLogger(__name__).info(
            "run started: pid=%d argv=%s", os.getpid(), " ".join(sys.argv),
        )


def _parse_level(level: str | None) -> int:
    """Level name to number; WARNING for anything unrecognized."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
