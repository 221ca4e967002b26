"""Tests for the centralized logging module."""

import logging
from io import StringIO

import pytest

from trafficflow.logging import (
    ROOT_LOGGER_NAME,
    disable_debug_logging,
    enable_debug_logging,
    get_logger,
    reset_logging,
    set_global_log_level,
    setup_root_logger,
)


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    reset_logging()
    setup_root_logger()


def test_logger_inherits_root_level():
    set_global_log_level(logging.INFO)
    logger = get_logger("trafficflow.test")

    capture = StringIO()
    handler = logging.StreamHandler(capture)
    handler.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    try:
        logger.info("info message")
        logger.debug("hidden debug message")
        assert "info message" in capture.getvalue()
        assert "hidden debug message" not in capture.getvalue()

        enable_debug_logging()
        logger.debug("visible debug message")
        assert "visible debug message" in capture.getvalue()
    finally:
        logger.removeHandler(handler)


def test_logger_naming_and_level():
    logger = get_logger("trafficflow.aggregator.test")
    assert logger.name == "trafficflow.aggregator.test"
    assert logger.level == logging.NOTSET


def test_set_global_level_applies_to_children():
    child = get_logger("trafficflow.module1")
    set_global_log_level(logging.WARNING)
    assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.WARNING
    assert child.getEffectiveLevel() == logging.WARNING

    disable_debug_logging()
    assert child.getEffectiveLevel() == logging.INFO


def test_single_handler_after_repeated_setup():
    setup_root_logger()
    setup_root_logger()
    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1


def test_env_level_override(monkeypatch):
    reset_logging()
    monkeypatch.setenv("TRAFFICFLOW_LOG_LEVEL", "error")
    setup_root_logger()
    assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.ERROR


def test_invalid_env_level_falls_back(monkeypatch):
    reset_logging()
    monkeypatch.setenv("TRAFFICFLOW_LOG_LEVEL", "chatty")
    setup_root_logger(level=logging.INFO)
    assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.INFO
