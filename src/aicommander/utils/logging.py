"""Logging setup for the ``aicommander`` command line and embedding hosts."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "log_directory", "LOG_FILE_NAME"]

LOG_FILE_NAME = "aicommander.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

# Handlers installed by this module; the host's own handlers are left alone.
_installed: list[logging.Handler] = []


def log_directory(log_dir: Path | str | None = None) -> Path:
    """Return ``log_dir``, else ``$AICOMMANDER_LOG_DIR``, else ``~/.aicommander/logs``."""

    chosen = log_dir or os.environ.get("AICOMMANDER_LOG_DIR") or Path.home() / ".aicommander" / "logs"
    return Path(chosen).expanduser()


def setup_logging(
    debug: bool = False,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Route records to a rotating log file and return its path.

    The first call installs the handlers. Later calls only switch between
    DEBUG and INFO, so a ``debug_logging`` setting read after start-up can be
    applied by calling this again with ``debug=True``.
    """

    root = logging.getLogger()
    if not _installed:
        directory = log_directory(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        handlers: list[logging.Handler] = [
            logging.handlers.RotatingFileHandler(
                directory / LOG_FILE_NAME,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        ]
        if console:
            handlers.append(logging.StreamHandler())
        for handler in handlers:
            handler.setFormatter(formatter)
            root.addHandler(handler)
        _installed.extend(handlers)
        logging.captureWarnings(True)

    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)
    for handler in _installed:
        handler.setLevel(level)
    # SDK and transport chatter stays at WARNING even in debug mode.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    file_handler = _installed[0]
    assert isinstance(file_handler, logging.handlers.RotatingFileHandler)
    return Path(file_handler.baseFilename)
