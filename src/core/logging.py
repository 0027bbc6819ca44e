"""
Logging for ingest runs.

Every module logs through a child of the ``caseingest`` logger. One
``processing.log`` per application base directory collects the messages of
all ingest tasks, so each record carries the logger name of the stage that
wrote it (``caseingest.ingest.ingest_task``, ``caseingest.core.database...``).
Timestamps are UTC so logs from different examiner machines line up.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from core.config import LoggingConfig

LOG_FILE_NAME = "processing.log"
LOG_NAMESPACE = "caseingest"
LOG_FORMAT = "%(asctime)sZ %(levelname)s %(name)s %(message)s"


class UtcFormatter(logging.Formatter):
    """Formatter that renders timestamps in UTC using ISO-8601."""

    converter = time.gmtime

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="seconds")


def configure_logging(
    log_dir: Path,
    config: Optional["LoggingConfig"] = None,
    *,
    console: bool = True,
) -> Logger:
    """
    Send ``caseingest`` records to ``<log_dir>/processing.log`` and the console.

    Calling it again replaces the handlers of an earlier call, so repeated CLI
    runs in one process do not write every line twice.

    Args:
        log_dir: Directory for the log file (created if missing)
        config: Level and rotation settings; defaults when None
        console: Also log to stderr

    Returns:
        The namespace logger
    """
    level_name = config.level if config is not None else "INFO"
    max_bytes = (config.max_mb if config is not None else 50) * 1024 * 1024
    backup_count = config.backup_count if config is not None else 10

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME
    formatter = UtcFormatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")

    namespace_logger = logging.getLogger(LOG_NAMESPACE)
    namespace_logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    for handler in list(namespace_logger.handlers):
        handler.close()
    namespace_logger.handlers.clear()

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    namespace_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        namespace_logger.addHandler(console_handler)

    namespace_logger.debug("Ingest log: %s (max %d MB, %d backups)",
                           log_path, max_bytes // (1024 * 1024), backup_count)
    return namespace_logger


def get_logger(name: Optional[str] = None) -> Logger:
    """Return ``caseingest.<name>``, or the namespace logger itself."""
    base = logging.getLogger(LOG_NAMESPACE)
    if name:
        return base.getChild(name)
    return base
