"""Logging configuration for callguard.

Console records go to stderr through rich, so command output on stdout
stays machine-readable. An optional rotating file handler keeps the full
format for later inspection of retries and breaker trips.
"""

import logging
import logging.handlers
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_LOG_FORMAT = '%(name)s: %(message)s' # rich adds time and level itself
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Chatty third-party loggers, capped regardless of the application level
LIBRARY_LOG_LEVELS: Dict[str, int] = {
    "aiohttp": logging.WARNING,
    "asyncio": logging.WARNING,
}


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
) -> None:
    """Configures the root logger; safe to call more than once.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG).
        log_format: Format string for the file handler.
        log_file: Optional path of a rotating log file.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8',
            )
        except OSError as e:
            root_logger.error(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)

    for name, level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(max(level, log_level))

    root_logger.debug(f"Logging configured: level={logging.getLevelName(log_level)}, file={log_file}")


def level_from_name(name: Optional[str], default: int = DEFAULT_LOG_LEVEL) -> int:
    """Resolves a level name such as 'debug' to its logging constant."""
    if not name:
        return default
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default
