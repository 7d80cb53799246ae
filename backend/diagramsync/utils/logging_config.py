"""
Structured Logging Configuration for DiagramSync

Uses loguru for production-ready logging with:
- Human readable console output
- File rotation with compression
- Separate realtime (presence / cursor) log file
"""

import sys
import logging
from pathlib import Path

from loguru import logger as loguru_logger

from diagramsync.config import settings


# Log directory
LOG_DIR = Path("logs")
LOG_DIR.mkdir(exist_ok=True)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging messages and redirect to Loguru.
    This allows compatibility with third-party libraries using standard logging.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging() -> None:
    """
    Configure Loguru for production use.
    Call this once at application startup.
    """
    loguru_logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    loguru_logger.add(
        sys.stdout,
        format=log_format,
        level=settings.LOG_LEVEL,
        colorize=True,
        backtrace=True,
        diagnose=settings.DEBUG,
    )

    # All logs (INFO and above)
    loguru_logger.add(
        LOG_DIR / "app.log",
        format=FILE_FORMAT,
        level="INFO",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        backtrace=True,
        diagnose=settings.DEBUG,
        encoding="utf-8",
    )

    # Error logs only
    loguru_logger.add(
        LOG_DIR / "error.log",
        format=FILE_FORMAT,
        level="ERROR",
        rotation="00:00",
        retention="90 days",
        compression="zip",
        backtrace=True,
        diagnose=True,
        encoding="utf-8",
    )

    # Presence / cursor traffic, noisy so kept apart
    loguru_logger.add(
        LOG_DIR / "realtime.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="500 MB",
        retention="7 days",
        compression="zip",
        filter=lambda record: record["extra"].get("name") in ("websocket", "presence"),
        encoding="utf-8",
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def get_logger(name: str):
    """
    Get a logger for a specific module.

    Usage:
        from diagramsync.utils.logging_config import get_logger
        logger = get_logger(__name__)
    """
    return loguru_logger.bind(name=name)


fastapi_logger = loguru_logger.bind(name="fastapi")
websocket_logger = loguru_logger.bind(name="websocket")
database_logger = loguru_logger.bind(name="database")
auth_logger = loguru_logger.bind(name="auth")
storage_logger = loguru_logger.bind(name="storage")
presence_logger = loguru_logger.bind(name="presence")
diagram_logger = loguru_logger.bind(name="diagram")


__all__ = [
    "setup_logging",
    "get_logger",
    "loguru_logger",
    "fastapi_logger",
    "websocket_logger",
    "database_logger",
    "auth_logger",
    "storage_logger",
    "presence_logger",
    "diagram_logger",
]
