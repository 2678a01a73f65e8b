"""Tests for structured logging configuration."""

import json
import logging
import sys

import pytest

from sosrelay.logging_config import (
    JsonFormatter,
    StructuredLogger,
    TextFormatter,
    correlation_id_ctx,
    get_logger,
    setup_logging,
    sweep_id_ctx,
)


def make_record(level=logging.INFO, msg="Sweep done", extra_fields=None, exc_info=None):
    record = logging.LogRecord(
        name="sosrelay.services.escalation_engine",
        level=level,
        pathname="/app/sosrelay/services/escalation_engine.py",
        lineno=120,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_basic_fields(self):
        parsed = json.loads(JsonFormatter(service_name="relay-test").format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "relay-test"
        assert parsed["message"] == "Sweep done"
        assert parsed["logger"] == "sosrelay.services.escalation_engine"
        assert "timestamp" in parsed
        assert "correlation_id" not in parsed
        assert "sweep_id" not in parsed

    def test_context_ids(self):
        correlation = correlation_id_ctx.set("req-42")
        sweep = sweep_id_ctx.set("abc123")
        try:
            parsed = json.loads(JsonFormatter().format(make_record()))
        finally:
            sweep_id_ctx.reset(sweep)
            correlation_id_ctx.reset(correlation)

        assert parsed["correlation_id"] == "req-42"
        assert parsed["sweep_id"] == "abc123"

    def test_extra_fields_merged(self):
        record = make_record(extra_fields={"request_id": "r-1", "processed": 3})

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["request_id"] == "r-1"
        assert parsed["processed"] == 3

    def test_error_includes_location_and_exception(self):
        try:
            raise RuntimeError("store exploded")
        except RuntimeError:
            exc_info = sys.exc_info()

        record = make_record(level=logging.ERROR, msg="Sweep failed", exc_info=exc_info)
        record.funcName = "run_sweep"

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["location"] == {
            "file": "/app/sosrelay/services/escalation_engine.py",
            "line": 120,
            "function": "run_sweep",
        }
        assert "RuntimeError: store exploded" in parsed["exception"]

    def test_non_serializable_extras(self):
        record = make_record(extra_fields={"when": object()})
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["when"].startswith("<object")


class TestTextFormatter:
    """Tests for text log formatting."""

    def test_basic(self):
        output = TextFormatter(service_name="relay-test").format(make_record())

        assert "relay-test - INFO - [-] - Sweep done" in output

    def test_correlation_id_and_extras(self):
        token = correlation_id_ctx.set("req-42")
        try:
            output = TextFormatter().format(
                make_record(extra_fields={"request_id": "r-1", "next_index": 2})
            )
        finally:
            correlation_id_ctx.reset(token)

        assert "[req-42]" in output
        assert output.endswith("Sweep done request_id=r-1 next_index=2")

    def test_sweep_id_shown_as_field(self):
        token = sweep_id_ctx.set("abc123")
        try:
            output = TextFormatter().format(make_record())
        finally:
            sweep_id_ctx.reset(token)

        assert "sweep_id=abc123" in output


class TestStructuredLogger:
    """Tests for StructuredLogger wrapper."""

    def test_extra_fields_attached(self, caplog):
        logger = get_logger("sosrelay.test")

        with caplog.at_level(logging.INFO, logger="sosrelay.test"):
            logger.info("Escalation notification sent", request_id="r-1", next_index=1)

        record = caplog.records[-1]
        assert record.getMessage() == "Escalation notification sent"
        assert record.extra_fields == {"request_id": "r-1", "next_index": 1}

    def test_bind_adds_fields(self, caplog):
        logger = get_logger("sosrelay.test").bind(request_id="r-1")

        with caplog.at_level(logging.WARNING, logger="sosrelay.test"):
            logger.warning("Priority has no delivery target, skipped", next_index=2)

        assert caplog.records[-1].extra_fields == {"request_id": "r-1", "next_index": 2}

    def test_bind_does_not_change_parent(self, caplog):
        parent = get_logger("sosrelay.test")
        child = parent.bind(request_id="r-1")

        assert isinstance(child, StructuredLogger)
        assert child.name == parent.name == "sosrelay.test"

        with caplog.at_level(logging.INFO, logger="sosrelay.test"):
            parent.info("No fields")

        assert not hasattr(caplog.records[-1], "extra_fields")

    def test_exception_includes_traceback(self, caplog):
        logger = get_logger("sosrelay.test")

        with caplog.at_level(logging.ERROR, logger="sosrelay.test"):
            try:
                raise ValueError("bad")
            except ValueError:
                logger.exception("Request failed", path="/api/escalations/run")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.exc_info is not None

    def test_debug_below_level_dropped(self, caplog):
        logger = get_logger("sosrelay.test")

        with caplog.at_level(logging.INFO, logger="sosrelay.test"):
            logger.debug("Request changed since scan, skipping")

        assert caplog.records == []


class TestSetupLogging:
    """Tests for logging setup function."""

    def test_json(self, restore_root_logger):
        setup_logging(log_format="json", log_level="DEBUG", service_name="custom-service")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, JsonFormatter)
        assert formatter.service_name == "custom-service"

    def test_text(self, restore_root_logger):
        setup_logging(log_format="text", log_level="warning")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        setup_logging(log_level="LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_quiets_third_party_loggers(self, restore_root_logger):
        setup_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("apscheduler").level == logging.WARNING
