"""Logging configuration for the TUID recognition backend."""

import logging
import sys
from pathlib import Path
from typing import Optional
from loguru import logger
from core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Third-party loggers that write through the standard logging module
FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx", "httpcore")


class StdlibForwarder(logging.Handler):
    """Sends standard-library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None, to_file: bool = True):
    """Configure loguru logger with console and (optionally) file handlers.

    Args:
        level: Minimum level. If None, uses settings.LOG_LEVEL
        log_file: Log file path. If None, uses settings.LOG_FILE
        to_file: Add the rotating file sink

    Returns:
        The configured loguru logger
    """
    level = level or settings.LOG_LEVEL

    # Remove default handler
    logger.remove()

    # Console handler with color
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    # File handler with rotation
    if to_file:
        path = Path(log_file or settings.LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            format=FILE_FORMAT,
            level=level,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            compression="zip",
            enqueue=True,
        )

    forwarder = StdlibForwarder()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [forwarder]
        std_logger.propagate = False

    return logger


# Initialize logger
log = setup_logging()
