"""
Logging configuration for the cleaning pipeline.

Nothing is configured at import time: the CLI calls ``setup_logging`` once
per invocation. Every line carries the ``trigger`` of the cleaning run that
emitted it (``-`` outside a run), bound by ``CleaningPipeline`` with
``logger.contextualize``.
"""

import os
import sys
from pathlib import Path

from loguru import logger

from income_cleaning.config import CleaningSettings, get_settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[trigger]: <9}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[trigger]} | {name}:{function}:{line} - {message}"


def setup_logging(
    level: str | None = None,
    log_file: Path | None = None,
    cleaning: CleaningSettings | None = None,
) -> list[int]:
    """
    Route pipeline logs to stderr and, optionally, a rotating file.

    Args:
        level: Log level; defaults to ``CLEANING_LOG_LEVEL``
        log_file: Log file path; defaults to ``CLEANING_LOG_FILE``
        cleaning: Settings to read defaults, rotation and retention from

    Returns:
        The loguru handler ids added (empty when ``DISABLE_LOGGING=1``)
    """
    if os.environ.get("DISABLE_LOGGING") == "1":
        return []

    cleaning = cleaning or get_settings().cleaning
    level = (level or cleaning.log_level).upper()
    log_file = log_file or cleaning.log_file

    logger.remove()
    logger.configure(extra={"trigger": "-"})

    handlers = [logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logger.add(
            log_file,
            level=level,
            format=FILE_FORMAT,
            rotation=cleaning.log_rotation,
            retention=cleaning.log_retention,
            compression="gz",
        ))

    logger.debug(f"Logging configured: level={level} file={log_file or '-'}")
    return handlers
