"""Logging configuration for the application."""

import logging
import sys

from app.config import settings


def setup_logging() -> None:
    """Configure application-wide logging.

    Level comes from settings.LOG_LEVEL (DEBUG when settings.DEBUG is set).
    Output goes to stdout.
    """
    log_level = logging.DEBUG if settings.DEBUG else getattr(
        logging, settings.LOG_LEVEL.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)
