"""
Logging for popmix.

Every module logs through ``logging.getLogger(__name__)``, which places its
records under the ``popmix`` namespace. The CLI configures that namespace once
per invocation. JSON results own stdout, so console records go to stderr.
"""

import logging
import platform
import sys
import time
from importlib import metadata
from pathlib import Path
from typing import Optional

from .exceptions import InvalidInputError

PACKAGE_LOGGER = "popmix"
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
REPORTED_DISTRIBUTIONS = ("numpy", "scipy", "pandas", "click", "PyYAML")


class PerformanceLogger:
    """Time one engine run and log how it ended.

    The start is logged at DEBUG so multi-target runs stay quiet at INFO.
    Completion is logged at INFO. Rejected input is logged at WARNING and any
    other failure at ERROR. The exception always propagates. ``duration``
    holds the elapsed seconds after the block exits.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.duration: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._start
        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {self.duration:.3f}s")
        elif issubclass(exc_type, InvalidInputError):
            self.logger.warning(f"Rejected input for {self.operation}: {exc_val}")
        else:
            self.logger.error(f"Failed {self.operation} after {self.duration:.3f}s: {exc_val}")
        return False


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = True,
    format_string: Optional[str] = None
) -> logging.Logger:
    """Configure the ``popmix`` logger, replacing any handlers it already has.

    Args:
        level: Level name; unknown names fall back to INFO
        log_file: Optional file that receives the same records
        console_output: Attach a stderr handler
        format_string: Record format, ``DEFAULT_FORMAT`` when omitted

    Returns:
        The package logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    handlers = []
    if console_output:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logger = logging.getLogger(PACKAGE_LOGGER)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(numeric_level)
    logger.propagate = False
    return logger


def log_system_info(logger: logging.Logger) -> None:
    """Log the interpreter and the installed numeric stack for bug reports."""
    logger.info(f"popmix on Python {platform.python_version()} ({platform.platform()})")
    for name in REPORTED_DISTRIBUTIONS:
        try:
            version = metadata.version(name)
        except metadata.PackageNotFoundError:
            version = "not installed"
        logger.info(f"  {name}: {version}")
