"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO
from logging.handlers import RotatingFileHandler

import pytest

from sql_rate_limit.core.config import LogSettings
from sql_rate_limit.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    _build_handler,
    _redact_value,
    clear_request_id,
    get_request_id,
    hash_key,
    set_request_id,
)


@pytest.fixture
def capture():
    """Logger wired exactly like configure_logging(), writing to a buffer."""

    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()


def test_sensitive_filter_redacts_store_credentials(capture):
    logger, stream = capture

    logger.info(
        "store.configured",
        extra={
            "store_url": "postgresql://limiter:pw@db/limits",
            "credential": "tok-123",
            "dialect": "postgresql",
        },
    )

    output = stream.getvalue()
    assert "tok-123" not in output
    assert "limiter:pw" not in output
    assert "[REDACTED]" in output
    assert "postgresql" in output


def test_sensitive_filter_redacts_raw_keys(capture):
    logger, stream = capture

    logger.info("rate_limit.debug", extra={"rate_limit_key": "ip:203.0.113.7", "limit": 5})

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert '"limit": 5' in output


def test_sensitive_filter_redacts_nested_dicts(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={"headers": {"authorization": "Bearer abc", "user-agent": "pytest"}},
    )

    output = stream.getvalue()
    assert "Bearer abc" not in output
    assert "pytest" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture

    logger.warning(
        "rate_limit.exceeded",
        extra={"key_hash": hash_key("ip:1.2.3.4"), "remaining": 0, "retry_after_s": 12},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.exceeded"
    assert record["level"] == "warning"
    assert record["key_hash"] == hash_key("ip:1.2.3.4")
    assert record["retry_after_s"] == 12


def test_request_id_is_attached_from_context(capture):
    logger, stream = capture

    set_request_id("req-42")
    try:
        logger.info("rate_limit.allowed")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-42"


def test_hash_key_is_stable_and_short():
    assert hash_key("ip:1.2.3.4") == hash_key("ip:1.2.3.4")
    assert hash_key("ip:1.2.3.4") != hash_key("ip:1.2.3.5")
    assert len(hash_key("ip:1.2.3.4")) == 16


def test_clear_request_id_resets_context():
    set_request_id("req-7")
    assert get_request_id() == "req-7"

    clear_request_id()

    assert get_request_id() is None


def test_redact_value_keeps_sequence_types():
    value = ({"Password": "p"}, [{"limit": 5}])

    redacted = _redact_value(value, {"password"})

    assert isinstance(redacted, tuple)
    assert redacted == ({"Password": "[REDACTED]"}, [{"limit": 5}])


def test_build_handler_defaults_to_stdout():
    handler = _build_handler(LogSettings(output="stdout"))

    assert type(handler) is logging.StreamHandler


def test_build_handler_rotates_file_output(tmp_path):
    log_file = tmp_path / "logs" / "rate-limit.log"

    handler = _build_handler(
        LogSettings(output="file", file_path=str(log_file), max_bytes=1024, backup_count=2)
    )
    try:
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert log_file.parent.is_dir()
    finally:
        handler.close()
