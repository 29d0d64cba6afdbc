"""Logging helpers used by the command line front-end."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

__all__ = [
    "close_debug_logger",
    "configure_console_logging",
    "configure_debug_file_logger",
]

_TAG = "_player_deobfuscator_dump"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def _drop_tagged_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _TAG, False):
            logger.removeHandler(handler)
            handler.close()


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
) -> logging.Logger:
    """Send records of logger ``name`` to ``path``, truncating the file.

    Calling this again for the same logger replaces the earlier file handler.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    _drop_tagged_handlers(logger)

    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    setattr(handler, _TAG, True)
    handler.setFormatter(formatter or logging.Formatter(_FILE_FORMAT))
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Remove handlers installed by :func:`configure_debug_file_logger`."""

    _drop_tagged_handlers(logger)


def configure_console_logging(level: int = logging.WARNING) -> None:
    """Attach a stderr handler to the root logger unless one already exists."""

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
