"""File logging for the CLI; user-facing output goes through the rich console."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "cforge"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(path: Path, max_bytes: int = 2_000_000, backups: int = 3) -> logging.Logger:
    """Attach a rotating file handler to the package logger (idempotent)."""
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    logger.propagate = False

    fmt = logging.Formatter(LOG_FORMAT)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            path, encoding="utf-8", maxBytes=max_bytes, backupCount=backups
        )
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(fmt)
    logger.addHandler(handler)

    if os.environ.get("CFORGE_LOG_STDOUT") == "1":
        stream = logging.StreamHandler()
        stream.setFormatter(fmt)
        logger.addHandler(stream)
    return logger
