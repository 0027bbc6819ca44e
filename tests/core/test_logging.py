"""Tests for src/core/logging.py - ingest log setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from core.config import LoggingConfig
from core.logging import LOG_FILE_NAME, LOG_NAMESPACE, configure_logging, get_logger


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(LOG_NAMESPACE)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def test_records_go_to_processing_log(tmp_path):
    configure_logging(tmp_path / "logs", LoggingConfig(level="debug"), console=False)

    get_logger("ingest.ingest_task").debug("Adding interesting files")
    for handler in logging.getLogger(LOG_NAMESPACE).handlers:
        handler.flush()

    text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "DEBUG caseingest.ingest.ingest_task Adding interesting files" in text


def test_reconfiguring_replaces_handlers(tmp_path):
    configure_logging(tmp_path, LoggingConfig(max_mb=1, backup_count=2))
    logger = configure_logging(tmp_path, LoggingConfig(max_mb=1, backup_count=2), console=False)

    assert len(logger.handlers) == 1
    handler = logger.handlers[0]
    assert isinstance(handler, RotatingFileHandler)
    assert handler.maxBytes == 1024 * 1024
    assert handler.backupCount == 2


def test_unknown_level_falls_back_to_info(tmp_path):
    logger = configure_logging(tmp_path, LoggingConfig(level="chatty"), console=False)

    assert logger.level == logging.INFO


def test_get_logger_without_name_is_namespace():
    assert get_logger().name == LOG_NAMESPACE
    assert get_logger("core.config").name == f"{LOG_NAMESPACE}.core.config"
