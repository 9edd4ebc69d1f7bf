"""
Logging utilities.

WHAT: One place to configure handlers and hand out module loggers
WHY: Every component logs state transitions and rejections the same way
HOW: stdlib logging, console + optional file handler, levels from settings
"""

import logging
import sys
from pathlib import Path

from ..core.config import settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown out bargaining events at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "multipart", "websockets", "uvicorn.access")


def setup_logging():
    """
    Configure application logging.

    WHAT: Root logger with a console handler and, when LOG_FILE is set, a file handler
    WHY: Session transitions must be visible in the console and kept on disk
    HOW: Replace existing root handlers, apply LOG_LEVEL, tame chatty libraries
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_file = Path(settings.LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if not settings.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized (level={settings.LOG_LEVEL}, file={settings.LOG_FILE or 'disabled'})"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
