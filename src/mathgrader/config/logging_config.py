"""
Centralized logging configuration for the math grading pipeline.

Loguru is used everywhere; modules obtain a bound logger through
get_logger(__name__) so every record carries the emitting module.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> | {message}"
)


def setup_structured_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    serialize: bool = False,
    stream=None,
) -> None:
    """
    Configure Loguru handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a rotating log file
        serialize: Emit JSON records instead of text lines
        stream: Console stream (default: stdout)
    """
    logger.remove()
    logger.configure(extra={"module": "mathgrader"})

    logger.add(
        stream or sys.stdout,
        serialize=serialize,
        format=TEXT_FORMAT,
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            serialize=True,
            level="DEBUG",  # Always debug to file
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )

    # Suppress noisy third-party loggers
    logger.disable("httpx")
    logger.disable("httpcore")


def setup_from_settings(settings, stream=None) -> None:
    """Configure logging from a Settings instance."""
    setup_structured_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        serialize=settings.log_json,
        stream=stream,
    )


def get_logger(name: str):
    """
    Get a logger for a specific module.

    Args:
        name: Module name (usually __name__)

    Returns:
        Logger instance with module binding
    """
    return logger.bind(module=name)
