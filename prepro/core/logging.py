import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGER = "prepro"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

_handler: Optional[logging.Handler] = None


def _level_from_env() -> int:
    level = logging.getLevelName(os.getenv("PREPRO_LOG_LEVEL", "WARNING").upper())
    return level if isinstance(level, int) else logging.WARNING


def _package_logger() -> logging.Logger:
    """The `prepro` logger, owning the only handler of the package."""
    global _handler
    package = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ"))
        package.addHandler(_handler)
        package.propagate = False
    package.setLevel(_level_from_env())
    return package


def get_logger(name: str) -> logging.Logger:
    """
    Returns the logger for a module of the package.

    Module loggers carry no handlers of their own; their records reach
    stderr through the package logger, whose level follows
    PREPRO_LOG_LEVEL as of the latest call. Names outside the package
    are placed under it.
    """
    package = _package_logger()
    if name == PACKAGE_LOGGER:
        return package
    if not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


# Default library logger
logger = get_logger(PACKAGE_LOGGER)
