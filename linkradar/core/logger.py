"""Logging setup for the archival worker and CLI.

Entry points configure the ``linkradar`` logger once through
``configure_logging``; library modules use ``logging.getLogger(__name__)`` and
inherit its handlers. Records go to stderr at INFO and to a rotating file at
DEBUG, so per-hop redirect and fetch timing details only land in the file.

Examples:
    >>> from linkradar.core.config import Settings
    >>> from linkradar.core.logger import configure_logging
    >>> logger = configure_logging(Settings())
    >>> logger.info("Worker started")
    2026-10-18 12:00:00,123 | INFO | linkradar | Worker started
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from linkradar.core.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

DEFAULT_LOG_FILE: Path = Settings.model_fields["log_file"].default

MAX_LOG_SIZE_BYTES = 100 * 1024 * 1024  # 100MB
BACKUP_COUNT = 5

# httpx logs every request at INFO; archive jobs log their own summary
CHATTY_LOGGERS = ("httpx", "httpcore")


def _with_format(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _build_handlers(log_file: Path) -> list[logging.Handler]:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return [
        _with_format(logging.StreamHandler(), logging.INFO),
        _with_format(
            RotatingFileHandler(
                log_file, maxBytes=MAX_LOG_SIZE_BYTES, backupCount=BACKUP_COUNT
            ),
            logging.DEBUG,
        ),
    ]


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure ``name`` with a console handler and a rotating file handler.

    Calling again replaces the handlers instead of stacking them.

    Args:
        name: Logger name (typically "linkradar")
        log_level: Level name for the logger itself
        log_file: Log file path; defaults to ``Settings.log_file``'s default.
            Parent directories are created.

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(log_file or DEFAULT_LOG_FILE):
        logger.addHandler(handler)

    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Set up the ``linkradar`` logger from settings and quiet HTTP client logs."""
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return get_logger("linkradar", settings.log_level, settings.log_file)
