"""Shared fixtures: isolate tests from the host environment and global logging state."""

from __future__ import annotations

import logging
import os

import pytest

from multitool import logging_config
from multitool.config import get_logging_settings

ENV_PREFIXES = ("DATABASE_", "REDIS_", "LOG_")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Drop DATABASE_*/REDIS_*/LOG_* variables so defaults are predictable."""
    for name in list(os.environ):
        if name.upper().startswith(ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    get_logging_settings.cache_clear()
    yield
    get_logging_settings.cache_clear()


@pytest.fixture
def fresh_logging(monkeypatch):
    """Let a test call init_logging() once, then undo whatever it installed."""
    root = logging.getLogger()
    handlers_before = list(root.handlers)
    level_before = root.level
    monkeypatch.setattr(logging_config, "_initialized", False)
    logging_config.clear_log_context()

    yield

    for handler in list(root.handlers):
        if handler not in handlers_before:
            root.removeHandler(handler)
    root.setLevel(level_before)
    for name in logging_config.NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)
    logging_config.clear_log_context()
