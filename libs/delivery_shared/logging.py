# libs/delivery_shared/logging.py
"""
Standardized logging configuration for all services.
"""

import logging
import sys


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically __name__ from the calling module

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def set_log_level(level: str, *names: str) -> None:
    """
    Set the level of parent loggers, e.g. ``set_log_level("DEBUG", "order_metrics")``.

    Module loggers obtained through ``get_logger`` keep level NOTSET and so
    inherit it. No handler is attached to the parents, which keeps each
    record printed once.
    """
    for name in names:
        logging.getLogger(name).setLevel(level.upper())
