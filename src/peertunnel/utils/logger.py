"""
Logging setup built on loguru.

Modules obtain a named logger with ``get_logger(__name__)``; the CLI calls
``configure_logging`` once before the event loop starts.
"""

import sys

from loguru import logger

from peertunnel.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level>"
)

_LOGURU_LEVELS = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

logger.configure(extra={"name": "peertunnel"})


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Replace loguru's default sink with the peertunnel stderr sink.

    Args:
        level: Verbosity. FULL also enables backtraces and variable diagnosis.
    """
    logger.remove()
    full = level == LogLevel.FULL
    logger.add(
        sys.stderr,
        level=_LOGURU_LEVELS[level],
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
        colorize=None,
    )


def get_logger(name: str):
    """Get a logger bound to a module name."""
    return logger.bind(name=name)
