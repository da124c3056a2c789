"""Logging utilities for depcheck commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, MutableMapping, Tuple

_LOGGER_NAME = "depcheck"
_CONSOLE_FORMAT = "[depcheck] %(levelname)s %(message)s"
# threadName identifies the feed worker that emitted a line.
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"
_QUIET_LIBRARIES = ("urllib3", "requests", "sqlalchemy.engine", "sqlalchemy.pool")


class FeedLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the feed id it concerns."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[feed {self.extra['feed_id']}] {msg}", kwargs


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the depcheck hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def feed_logger(feed_id: str, name: str = "feeds.pipeline") -> FeedLogAdapter:
    return FeedLogAdapter(get_logger(name), {"feed_id": feed_id})


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route depcheck records to stderr and, optionally, to ``log_file``.

    Verbose mode lowers the depcheck hierarchy to DEBUG. HTTP and SQL
    library loggers stay at WARNING either way so feed downloads and store
    queries do not flood the console. Calling this again replaces the
    previous handlers.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


__all__ = ["FeedLogAdapter", "configure_logging", "feed_logger", "get_logger"]
