"""Centralized logging configuration for qbclient.

The library itself only creates module loggers; applications call
``setup_logging`` once at startup to attach handlers to the root logger.
"""

import logging
import sys
from typing import Optional, Union

from rich.logging import RichHandler

from qbclient.infrastructure.config.settings import ClientSettings, load_client_settings

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
RICH_LOG_FORMAT = '%(name)s - %(message)s'


def _resolve_level(log_level: Union[int, str]) -> int:
    if isinstance(log_level, int):
        return log_level
    level = logging.getLevelName(str(log_level).upper())
    return level if isinstance(level, int) else DEFAULT_LOG_LEVEL


def setup_logging(
    log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
    rich_console: bool = False,
) -> None:
    """Configures the root logger.

    Args:
        log_level: Minimum level, as a number or a name such as "DEBUG".
        log_format: The format string for plain console and file output.
        log_file: Optional path to a file for logging output.
        rich_console: Render console output with rich instead of plain text.
    """
    level = _resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    if rich_console:
        console_handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setFormatter(logging.Formatter(RICH_LOG_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}", exc_info=True)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")

    logging.info(f"Logging configured. Level={logging.getLevelName(level)}")


def setup_logging_from_settings(settings: Optional[ClientSettings] = None, rich_console: bool = False) -> None:
    """Configures logging from the `logging.level` and `logging.file` settings.

    Args:
        settings: Loaded settings; read from the configuration layers if omitted.
        rich_console: Render console output with rich instead of plain text.
    """
    settings = settings or load_client_settings()
    setup_logging(settings.log_level, log_file=settings.log_file, rich_console=rich_console)
