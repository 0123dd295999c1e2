"""
Logging setup for the relay service.

Usage:
    configure_logging("INFO")             # once, at startup
    logger = logging.getLogger(__name__)  # in every module
"""

from __future__ import annotations

import logging

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Install one stream handler on the root logger.

    Raises:
        ValueError: unknown level name.
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {level}. Valid: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    handler = logging.StreamHandler()
    handler.setLevel(level_upper)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(level_upper)
    # Replace existing handlers so repeated startups don't duplicate lines
    root.handlers = [handler]
