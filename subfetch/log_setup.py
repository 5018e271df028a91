"""Logging configuration for subfetch."""
import logging
import sys
from typing import Optional

from loguru import logger

DEFAULT_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(
    level: str = "INFO",
    json: bool = False,
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: int = 5
) -> None:
    """
    Configure loguru sinks for the application.

    Args:
        level: Minimum level for all sinks
        json: Emit serialized JSON records on stderr
        log_file: Optional rotating log file
        rotation: Size at which the log file rotates
        retention: Number of rotated files to keep
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=DEFAULT_LOG_FORMAT, serialize=json)

    if log_file:
        try:
            logger.add(log_file, level=level.upper(), rotation=rotation,
                       retention=retention, encoding="utf-8", enqueue=True)
            logger.info(f"Logging initialized. Log file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to set up file logging at {log_file}: {e}")

    # Keep transport chatter out of our output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
