"""
Logging setup for learn-tutor entry points.

Library modules only import ``loguru.logger``; sinks are configured once by
whichever entry point runs (CLI or API server).
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import get_settings


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Replace loguru's default sink with the configured stderr and file sinks.

    Args:
        level: Override for the configured log level
        log_file: Override for the configured log file path
    """
    settings = get_settings()
    level = level or settings.log_level
    log_file = log_file if log_file is not None else settings.log_file

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention="14 days")
