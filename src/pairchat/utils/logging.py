"""
Central loguru configuration.

Modules log through 'from loguru import logger' directly; this helper only
swaps the default stderr sink for one at the configured level.
"""

import sys

from loguru import logger

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - {message}"


def setup_logging(level: str = "INFO") -> int:
    """Replace all loguru sinks with a single stderr sink and return its id."""
    logger.remove()
    return logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
