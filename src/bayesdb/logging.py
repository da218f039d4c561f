"""Logging setup shared by the CLI and the training daemon."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import ConfigError, LoggingConfig

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAIN_LOG_NAME = "bayesdb.log"
DEBUG_LOG_NAME = "debug.log"
LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class ConsoleFormatter(logging.Formatter):
    """Formatter that prepends colourised level symbols.

    With ``show_names`` the message is tagged with the last component of the
    logger name, e.g. ``[classifier]``, to tell word traces from learner and
    daemon messages.
    """

    SYMBOLS: dict[int, tuple[str, str]] = {
        logging.DEBUG: ("D", "\x1b[36m"),
        logging.INFO: ("I", "\x1b[32m"),
        logging.WARNING: ("!", "\x1b[33m"),
        logging.ERROR: ("X", "\x1b[31m"),
        logging.CRITICAL: ("X", "\x1b[35m"),
    }

    RESET = "\x1b[0m"

    def __init__(self, use_color: bool, *, show_names: bool = False) -> None:
        super().__init__("%(message)s")
        self.use_color = use_color
        self.show_names = show_names

    def format(self, record: logging.LogRecord) -> str:
        symbol, color = self.SYMBOLS.get(record.levelno, ("?", "\x1b[37m"))
        base_message = super().format(record)
        if self.show_names:
            base_message = f"[{record.name.rsplit('.', 1)[-1]}] {base_message}"
        if self.use_color:
            return f"{color}{symbol}{self.RESET} {base_message}"
        return f"{symbol} {base_message}"


def configure_logging(
    logging_config: LoggingConfig,
    root_dir: Path | None,
    *,
    debug: bool = False,
) -> None:
    """Initialise logging handlers.

    ``debug`` forces DEBUG level so per-word training traces are emitted.
    Without ``root_dir`` only the console handler is installed.
    """

    handlers: list[logging.Handler] = [_build_console_handler(show_names=debug)]
    if root_dir is not None:
        log_dir = (root_dir / "logs").expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_build_file_handler(log_dir / MAIN_LOG_NAME, level=logging.INFO))
        if logging_config.debug_file or debug:
            handlers.append(_build_file_handler(log_dir / DEBUG_LOG_NAME, level=logging.DEBUG))

    level = logging.DEBUG if debug else level_from_string(logging_config.level)
    logging.basicConfig(level=level, handlers=handlers, force=True)
    # Observer threads are chatty at DEBUG.
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))


def level_from_string(level: str) -> int:
    try:
        return LEVELS[level.strip().upper()]
    except KeyError as exc:
        raise ConfigError(f"Unknown log level: {level}") from exc


def _build_file_handler(path: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=5)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def _build_console_handler(*, show_names: bool = False) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(ConsoleFormatter(_stream_supports_color(handler), show_names=show_names))
    return handler


def _stream_supports_color(handler: logging.Handler) -> bool:
    stream = getattr(handler, "stream", None)
    return bool(getattr(stream, "isatty", lambda: False)())


__all__ = ["ConsoleFormatter", "configure_logging", "level_from_string"]
