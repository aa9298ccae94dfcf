# src/taskmate/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "taskmate.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Lowered to WARNING everywhere (file included); they log every HTTP request at INFO.
NOISY_LIBRARIES = ("httpx", "httpcore", "openai")

# Background components that share the terminal with the REPL.
_QUIET_PREFIXES = (
    "taskmate.tasks.task_reminder",
    "taskmate.connectors.reminder_runner",
)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for interactive use.

    taskmate records pass, except the reminder loop, which only shows
    WARNING and up (reminders themselves are printed by the notifier).
    Captured Python warnings and third-party records need ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name == "taskmate" or name.startswith("taskmate."):
            if name.startswith(_QUIET_PREFIXES):
                return record.levelno >= logging.WARNING
            return True

        return record.levelno >= logging.ERROR


def _coerce_level(level: int | str, default: int = logging.INFO) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskmate",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """
    Configure the root logger once, at startup:
    - stderr handler, filtered for interactive use
    - size-rotated file handler with full detail

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Re-running setup must not duplicate output.
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_coerce_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(_coerce_level(file_level, logging.DEBUG))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # warnings.warn(...) -> 'py.warnings' logger
    logging.captureWarnings(True)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
