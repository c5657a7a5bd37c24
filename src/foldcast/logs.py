"""Logging setup for the foldcast CLI and embedding applications."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from foldcast.config.models import LoggingSettings

LOGGER_NAME = "foldcast"
LOG_FILENAME = "foldcast.log"
_HANDLER_MARKER = "_foldcast_handler"


def configure_logging(
    settings: LoggingSettings,
    *,
    console: Console | None = None,
    log_to_file: bool = True,
) -> logging.Logger:
    """Attach console and rotating-file handlers to the ``foldcast`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        settings: Level, directory, and rotation options.
        console: Rich console used for terminal output (stderr by default).
        log_to_file: Whether to also write a size-rotated log file.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.getLevelName(settings.level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.WARNING)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    terminal = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    setattr(terminal, _HANDLER_MARKER, True)
    logger.addHandler(terminal)

    if log_to_file:
        log_dir = Path(settings.log_dir).expanduser()
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                log_dir / LOG_FILENAME,
                maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
                backupCount=max(0, settings.backup_count),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled; cannot use %s: %s", log_dir, exc)
        else:
            rotating.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            setattr(rotating, _HANDLER_MARKER, True)
            logger.addHandler(rotating)

    return logger


__all__ = ["configure_logging", "LOGGER_NAME", "LOG_FILENAME"]
