"""Tests for the structured logging system (invoice_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from invoice_kernel.exceptions import DuplicateDescriptionError
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's DEBUG setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "invoice_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("charge_added", extra={"charge_id": 42, "amount": 10000})

        record = _parse_log(stream)
        assert record["charge_id"] == 42
        assert record["amount"] == 10000

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", payment_id="7")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["payment_id"] == "7"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise DuplicateDescriptionError("Charge", "description", "Hug #1")
        except DuplicateDescriptionError:
            get_logger("test").error("duplicate", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "DUPLICATE_DESCRIPTION"
        assert record["exc_entity_type"] == "Charge"
        assert record["exc_field"] == "description"
        assert record["exc_value"] == "Hug #1"

    def test_pii_fields_redacted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "entity_added",
            extra={"entity_id": 1, "address": {"street": "1 Main St"}, "passphrase": "hunter2"},
        )

        line = stream.getvalue()
        assert "Main St" not in line
        assert "hunter2" not in line
        record = _parse_log(stream)
        assert record["address"] == "[redacted]"
        assert record["entity_id"] == 1

    def test_pii_exception_attributes_redacted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        class LeakyError(Exception):
            def __init__(self):
                self.counterparty_info = "4242 4242 4242 4242"
                super().__init__("card rejected")

        try:
            raise LeakyError()
        except LeakyError:
            get_logger("test").error("failed", exc_info=True)

        assert _parse_log(stream)["exc_counterparty_info"] == "[redacted]"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "entity_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_values", extra={"trace": uid, "rate": Decimal("0.01")})

        record = _parse_log(stream)
        assert record["trace"] == str(uid)
        assert record["rate"] == "0.01"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")  # below the default INFO level

        logs = _parse_all_logs(stream)
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", charge_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "charge_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(entity_id="outer")
        with LogContext.bind(entity_id="inner"):
            assert LogContext.get_all()["entity_id"] == "inner"
        assert LogContext.get_all()["entity_id"] == "outer"

    def test_bind_restores_none(self):
        assert "entity_id" not in LogContext.get_all()
        with LogContext.bind(entity_id=5):
            assert LogContext.get_all()["entity_id"] == "5"
        assert "entity_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="x")
        with pytest.raises(TypeError):
            with LogContext.bind(actor="x"):
                pass

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            entity_id="e",
            relationship_id="r",
            charge_id="h",
            payment_id="p",
            trace_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["relationship_id"] == "r"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("invoice_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.payment").name == "invoice_kernel.services.payment"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "invoice_kernel.deep.nested.module"
