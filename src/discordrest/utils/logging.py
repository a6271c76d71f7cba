"""Logging setup for applications embedding discordrest."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """Route the ``discordrest`` loggers through a rich handler.

    Only the package logger is touched; the root logger is left to the
    embedding application. Calling this again replaces the previous handler.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("discordrest")
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
