"""
TravelBuddy logging.

Console (and optional file) logging for the relay server and the CLI client.

- Relay logs carry a ``[client <id>]`` prefix per websocket connection via
  ``connection_logger``.
- Library chatter (aiohttp/uvicorn access logs, websocket frames) is held at
  WARNING unless LOG_LEVEL is DEBUG.
- The interactive CLI can push console output down to WARNING so log lines
  do not interleave with the chat prompt, while the log file keeps everything.

Usage:
    from travelbuddy.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Weather request received")
"""

import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%H:%M:%S"

NOISY_LOGGERS = (
    "aiohttp.access",
    "uvicorn.access",
    "websockets",
    "asyncio",
)


class ColoredFormatter(logging.Formatter):
    """Colors the level name; the record itself is left untouched."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        color = self.COLORS.get(record.levelno, self.RESET)
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers (the log file) must see the plain name
            record.levelname = original


class ConnectionAdapter(logging.LoggerAdapter):
    """Prefixes messages with the websocket client they belong to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[client {self.extra['client_id']}] {msg}", kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    console_level: Optional[str] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level for the file handler and the root logger
        log_file: Optional path to a UTF-8 log file
        use_colors: Color level names when stdout is a terminal
        console_level: Separate console threshold (defaults to ``level``)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    console_numeric = getattr(logging, (console_level or level).upper(), numeric_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_numeric)
    if use_colors and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    else:
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


def connection_logger(logger: logging.Logger, client_id: str) -> ConnectionAdapter:
    """Wrap ``logger`` so every line names the websocket client."""
    return ConnectionAdapter(logger, {"client_id": client_id})


_initialized = False


def init_logging(console_level: Optional[str] = None) -> None:
    """
    Configure logging from ``settings.logging`` on the first call.

    Later calls only move the console threshold.
    """
    global _initialized
    if _initialized:
        if console_level:
            set_console_level(console_level)
        return

    from travelbuddy.config import settings
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.file,
        console_level=console_level,
    )
    _initialized = True


def set_console_level(level: str) -> None:
    """Change the threshold of the console handler only."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(numeric_level)
