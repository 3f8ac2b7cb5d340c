"""Logging configuration for the ovsx-sync application.

Every record carries the id of the extension being processed, so lines
from parallel batch workers can be told apart::

    12:01:02 INFO     [redhat.java] resolved v1.2.0 from release tag
"""

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Iterator, Optional

APP_LOGGER_PREFIX = "ovsx_sync"
NO_EXTENSION = "-"

CONSOLE_FORMAT = "%(asctime)s %(levelname)s [%(extension)s] %(message)s"
FILE_FORMAT = (
    "%(asctime)s %(levelname)-8s [%(extension)s] %(location)-30s %(message)s"
)
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# HTTP stack used by the marketplace and GitHub clients
NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer")

_current_extension: ContextVar[str] = ContextVar("extension", default=NO_EXTENSION)


@contextmanager
def extension_context(extension_id: str) -> Iterator[None]:
    """Tag records logged inside the block with ``extension_id``."""
    token = _current_extension.set(extension_id)
    try:
        yield
    finally:
        _current_extension.reset(token)


class ExtensionFilter(logging.Filter):
    """Adds ``extension`` and ``location`` fields to every record."""

    def filter(self, record: Any) -> bool:
        record.extension = _current_extension.get()
        record.location = f"{record.filename}:{record.lineno}"
        return True


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args: Any, use_color: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: Any) -> str:
        levelname = record.levelname
        padded = f"{levelname:<8}"
        if self.use_color and levelname in self.COLORS:
            padded = f"{self.COLORS[levelname]}{padded}{self.RESET}"
        # Handlers share the record
        record.levelname = padded
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ExtensionFilter())
    handler.setFormatter(
        ColoredFormatter(
            fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S", use_color=sys.stdout.isatty()
        )
    )
    return handler


def _file_handler(log_file: Path, level: int) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
    )
    handler.setLevel(level)
    handler.addFilter(ExtensionFilter())
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = True,
) -> None:
    """Install the console and file handlers on the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional rotating log file, written without colors
        console_output: Whether to log to stdout
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        root_logger.addHandler(_console_handler(level))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, level))
        logging.getLogger(__name__).info("Log file: %s", log_file)


def set_log_level(level: str) -> None:
    """Change the level of the ovsx_sync loggers and the installed handlers.

    Third-party loggers stay at WARNING even when switching to DEBUG.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers:
        handler.setLevel(numeric_level)

    for name in list(logging.root.manager.loggerDict):
        if name.startswith(APP_LOGGER_PREFIX):
            logging.getLogger(name).setLevel(numeric_level)

    configure_third_party_loggers()


def configure_third_party_loggers() -> None:
    """Keep the HTTP stack at WARNING."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
