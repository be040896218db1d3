"""Logging setup for scripts and services embedding the engine.

The library modules only create loggers; handlers are configured here.
"""

import logging
from typing import Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Configure root logging for a script.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or logging constant

    Raises:
        ValueError: unknown level name
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, force=True)
