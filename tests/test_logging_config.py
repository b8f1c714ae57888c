"""
Tests for JSON structured logging.
"""

import io
import json
import logging

import pytest
import structlog

from herdguard.core.error_handling import BackendUnavailableError
from herdguard.logging_config import (
    get_logger,
    log_backend_fallback,
    log_lock_wait_timeout,
    setup_json_logging,
)


@pytest.fixture
def log_stream():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    stream = io.StringIO()

    yield stream

    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def _records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_structlog_events_are_json(log_stream):
    setup_json_logging("INFO", service_name="svc", environment="test", stream=log_stream)

    get_logger("herdguard.tests").info("cache_warmed", keys=12)

    record = _records(log_stream)[-1]
    assert record["message"] == "cache_warmed"
    assert record["levelname"] == "INFO"
    assert record["keys"] == 12
    assert record["service"] == "svc"
    assert record["environment"] == "test"
    assert "timestamp" in record


def test_stdlib_records_share_the_stream(log_stream):
    setup_json_logging("INFO", stream=log_stream)

    logging.getLogger("herdguard.storage").warning("Redis connect failed")

    record = _records(log_stream)[-1]
    assert record["message"] == "Redis connect failed"
    assert record["name"] == "herdguard.storage"


def test_level_filters_events(log_stream):
    setup_json_logging("WARNING", stream=log_stream)

    get_logger("herdguard.tests").info("hidden")

    assert _records(log_stream) == []


def test_log_backend_fallback(log_stream):
    setup_json_logging("INFO", stream=log_stream)

    log_backend_fallback(
        get_logger("herdguard.tests"), "catalog", "get", BackendUnavailableError("get", "timeout")
    )

    record = _records(log_stream)[-1]
    assert record["message"] == "cache_backend_fallback"
    assert record["levelname"] == "WARNING"
    assert record["namespace"] == "catalog"
    assert record["operation"] == "get"
    assert record["error_type"] == "BackendUnavailableError"


def test_log_lock_wait_timeout(log_stream):
    setup_json_logging("INFO", stream=log_stream)

    log_lock_wait_timeout(get_logger("herdguard.tests"), "catalog", "nearby:1", 3001.234)

    record = _records(log_stream)[-1]
    assert record["message"] == "cache_lock_wait_timeout"
    assert record["key"] == "nearby:1"
    assert record["waited_ms"] == 3001.2
