from __future__ import annotations

import os
import sys

from loguru import logger

LOG_LEVEL = os.environ.get("APTITUDE_PREP_LOG_LEVEL", "INFO")
LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{function} | {message}"


def configure_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a single stderr sink."""
    logger.remove()
    logger.add(sys.stderr, level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)


__all__ = ["LOG_LEVEL", "configure_logging"]
