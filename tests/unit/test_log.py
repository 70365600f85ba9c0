"""Tests for logging setup and the JSON formatter."""

from __future__ import annotations

import json
import logging

import pytest
from rich.logging import RichHandler

from harvester.log import JSONFormatter, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("harvester.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_core_fields():
    entry = json.loads(JSONFormatter().format(_record()))
    assert entry["message"] == "hello world"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "harvester.test"
    assert entry["service"] == "harvester"
    assert "timestamp" in entry


def test_json_formatter_includes_extra_fields():
    entry = json.loads(JSONFormatter().format(_record(job_id="job_1", processed=3)))
    assert entry["job_id"] == "job_1"
    assert entry["processed"] == 3
    assert "args" not in entry
    assert "msecs" not in entry


def test_setup_logging_rich_by_default():
    setup_logging("debug")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0], RichHandler)


def test_setup_logging_json():
    setup_logging("WARNING", json=True)
    handler = logging.getLogger().handlers[0]
    assert isinstance(handler.formatter, JSONFormatter)


def test_setup_logging_unknown_level_falls_back_to_info():
    setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_litellm():
    setup_logging("DEBUG")
    assert logging.getLogger("LiteLLM").level == logging.WARNING
