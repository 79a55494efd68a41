"""
Library logging configuration.

Every flydrive module logs through the same "flydrive" logger so that an
application can raise or silence the driver output in one place.
"""
import logging
import sys

from flydrive.config import settings


def setup_logging() -> logging.Logger:
    """
    Configure and return the flydrive logger.

    The logger outputs to stdout with a structured format including:
    - Timestamp
    - Logger name
    - Log level
    - Message

    The level comes from the LOG_LEVEL setting.

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger("flydrive")
    logger.setLevel(settings.LOG_LEVEL)

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(settings.LOG_LEVEL)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
