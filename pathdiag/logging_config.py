"""
Logging configuration for pathdiag
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "pathdiag"


def setup_logging(level: str = "WARNING", console: Optional[Console] = None) -> logging.Logger:
    """
    Set up the package logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...)
        console: Rich console to write to (defaults to stderr)

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)

    # Keep records out of the root logger
    logger.propagate = False

    return logger


def configure_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Quick setup from CLI flags"""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    return setup_logging(level)
