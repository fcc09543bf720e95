"""
Tests for logging_setup module.

Verifies:
- JSON structured logging format
- Component and severity tagging
- Command ID correlation
- PII-aware logging helpers
- Log level configuration
"""
import json
import logging
from io import StringIO
from datetime import datetime

import pytest

from logging_setup import (
    setup_logging,
    get_logger,
    Component,
    JSONFormatter,
)


@pytest.fixture
def capture_logs():
    """Capture log output to a string buffer."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(JSONFormatter())

    logger = logging.getLogger()
    logger.handlers = []
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield buffer

    logger.handlers = []


def test_json_formatter_basic(capture_logs):
    """Test basic JSON log formatting."""
    logger = get_logger(Component.PIPELINE)
    logger.info("Test message", extra_field="value")

    log_entry = json.loads(capture_logs.getvalue().strip())

    assert log_entry["severity"] == "info"
    assert log_entry["component"] == "pipeline"
    assert log_entry["message"] == "Test message"
    assert log_entry["extra_field"] == "value"
    assert "timestamp" in log_entry


def test_json_formatter_timestamp_format(capture_logs):
    """Test that timestamp is in ISO8601 format."""
    logger = get_logger(Component.INTENT_CLIENT)
    logger.info("Timestamp test")

    log_entry = json.loads(capture_logs.getvalue().strip())
    dt = datetime.fromisoformat(log_entry["timestamp"].replace("Z", "+00:00"))
    assert dt is not None


def test_command_id_correlation(capture_logs):
    """Test that command_id is included when provided."""
    logger = get_logger(Component.DISPATCHER, command_id="cmd_123")
    logger.info("Command test")

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert log_entry["command_id"] == "cmd_123"


def test_command_id_absent_when_not_provided(capture_logs):
    logger = get_logger(Component.VALIDATOR)
    logger.info("No command")

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert "command_id" not in log_entry


def test_with_command_creates_new_logger(capture_logs):
    """Test that with_command binds a command ID without touching the original."""
    base_logger = get_logger(Component.PIPELINE)
    command_logger = base_logger.with_command("cmd_456")

    command_logger.info("With command")

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert log_entry["command_id"] == "cmd_456"
    assert base_logger.command_id is None


def test_pii_logging(capture_logs):
    """Transcripts go into a separate pii field."""
    logger = get_logger(Component.PIPELINE, command_id="cmd_789")
    logger.info_pii("Transcript", transcript="open my resume")

    log_entry = json.loads(capture_logs.getvalue().strip())

    assert log_entry["pii"]["transcript"] == "open my resume"
    assert log_entry["message"] == "Transcript"
    assert log_entry["command_id"] == "cmd_789"


def test_severity_levels(capture_logs):
    logger = get_logger(Component.EXECUTOR)

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warning("Warning message")
    logger.error("Error message")
    logger.critical("Critical message")

    lines = [line for line in capture_logs.getvalue().strip().split("\n") if line]
    severities = [json.loads(line)["severity"] for line in lines]
    assert severities == ["debug", "info", "warning", "error", "critical"]


def test_component_enum():
    assert Component.PIPELINE.value == "pipeline"
    assert Component.INTENT_CLIENT.value == "intent_client"
    assert Component.DISPATCHER.value == "dispatcher"
    assert Component.COMMAND_API.value == "command_api"


def test_component_string_fallback(capture_logs):
    logger = get_logger("custom_component")
    logger.info("Test")

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert log_entry["component"] == "custom_component"


def test_multiple_extra_fields(capture_logs):
    logger = get_logger(Component.PIPELINE)
    logger.info(
        "Complex log",
        field1="value1",
        field2=123,
        field3=True,
        field4={"nested": "object"}
    )

    log_entry = json.loads(capture_logs.getvalue().strip())

    assert log_entry["field1"] == "value1"
    assert log_entry["field2"] == 123
    assert log_entry["field3"] is True
    assert log_entry["field4"] == {"nested": "object"}


def test_latency_stays_parseable_without_color(capture_logs, monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    logger = get_logger(Component.INTENT_CLIENT)
    logger.info("Chat reply received", latency_ms=42)

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert log_entry["latency_ms"] == 42


def test_setup_logging_json():
    setup_logging(level="DEBUG", use_json=True)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)
    root_logger.handlers = []


def test_setup_logging_text():
    setup_logging(level="INFO", use_json=False)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.INFO
    assert len(root_logger.handlers) == 1
    assert not isinstance(root_logger.handlers[0].formatter, JSONFormatter)
    root_logger.handlers = []


def test_exception_logging(capture_logs):
    logger = get_logger(Component.DISPATCHER)

    try:
        raise ValueError("Test exception")
    except ValueError:
        logger.exception("Exception occurred")

    log_entry = json.loads(capture_logs.getvalue().strip())
    assert "exception" in log_entry
    assert "ValueError: Test exception" in log_entry["exception"]
