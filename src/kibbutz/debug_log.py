"""Logging setup for the relay process.

stdout carries the MCP stdio protocol, so log records go to stderr and,
optionally, to a rotating log file.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_LOG_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3

_ROOT_LOGGER_NAME = "kibbutz"
_installed_handlers: list[logging.Handler] = []


def setup_logging(level: str = "WARNING", log_file: Path | None = None) -> logging.Logger:
    """Configure the ``kibbutz`` logger hierarchy.

    Idempotent: handlers installed by a previous call are replaced, so the
    CLI can reconfigure after option parsing without duplicating output.
    """
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    _installed_handlers.append(stream_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            print(f"kibbutz: cannot open log file {log_file}: {exc}", file=sys.stderr)
        else:
            file_handler.setFormatter(formatter)
            _installed_handlers.append(file_handler)

    for handler in _installed_handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


__all__ = ["LOG_FORMAT", "setup_logging"]
