"""
Logging configuration for the voice emergency pipeline.

This module provides a centralized logging setup with file rotation
and proper formatting.
"""

import logging
from logging.handlers import TimedRotatingFileHandler

from voice_emergency.core.settings import LoggingSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Emergency records go to their own logger so they can be routed separately
EMERGENCY_LOGGER_NAME = "voice_emergency.emergency"


def get_emergency_logger() -> logging.Logger:
    """Logger used for alert transitions, emergency events and notifications."""
    return logging.getLogger(EMERGENCY_LOGGER_NAME)


def setup_logging(config: LoggingSettings | None = None) -> logging.Logger:
    """
    Configure logging with rotation and formatting.

    Args:
        config: Optional logging settings

    Returns:
        Logger instance for the package
    """
    config = config or LoggingSettings()
    config.directory.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    # File handler with rotation (daily rotation, keep 7 days by default)
    file_handler = TimedRotatingFileHandler(
        config.directory / "voice_emergency.log",
        when=config.rotation,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    # Separate file for emergency records
    emergency_handler = TimedRotatingFileHandler(
        config.directory / "emergency.log",
        when=config.rotation,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    emergency_handler.setFormatter(formatter)
    get_emergency_logger().addHandler(emergency_handler)

    logger = logging.getLogger("voice_emergency")
    logger.setLevel(level)

    logging.basicConfig(level=level, handlers=[console_handler, file_handler], format=LOG_FORMAT)

    return logger
