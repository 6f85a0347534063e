"""Logging setup for Numby.

Library code only creates loggers under the ``numby`` namespace; nothing is
printed until a host (or the CLI) calls setup_logging().
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER_NAME = "numby"
LEVEL_ENV_VAR = "NUMBY_LOG_LEVEL"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


class StructuredFormatter(logging.Formatter):
    """One line per record: UTC time, level, logger, thread and message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
            timespec="milliseconds"
        )
        line = (
            f"{timestamp} [{record.levelname}] {record.name} "
            f"({record.threadName}): {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv(LEVEL_ENV_VAR) or "WARNING").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.WARNING


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Attach stderr (and optionally file) handlers to the ``numby`` logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Level name; defaults to $NUMBY_LOG_LEVEL, then WARNING
        log_file: Optional file that receives the same records

    Returns:
        The configured ``numby`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    formatter = StructuredFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for one Numby module, e.g. get_logger("currency") -> ``numby.currency``."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
