"""Tests for the structured logging system (backoffice_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from backoffice_kernel.exceptions import NotAPartnerError
from backoffice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "backoffice.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bill_paid", extra={"bill_id": "abc", "amount": "10.00"})

        record = _parse_log(stream)
        assert record["bill_id"] == "abc"
        assert record["amount"] == "10.00"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        tenant = uuid4()
        with LogContext.bind(tenant_id=tenant, operation="bill_pay"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["tenant_id"] == str(tenant)
        assert record["operation"] == "bill_pay"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")
        record = _parse_log(stream)
        assert "tenant_id" not in record
        assert "operation" not in record

    def test_backoffice_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NotAPartnerError("OPS")
        except NotAPartnerError:
            get_logger("test").exception("failed")

        record = _parse_log(stream)
        assert record["exc_type"] == "NotAPartnerError"
        assert record["exc_code"] == "NOT_A_PARTNER"
        assert record["exc_center_code"] == "OPS"
        assert "Traceback" in record["traceback"]

    def test_plain_exception_has_no_code(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").exception("failed")

        record = _parse_log(stream)
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_uuid_decimal_and_date_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        value = uuid4()
        get_logger("test").info(
            "typed",
            extra={"center_id": value, "amount": Decimal("1.50"), "due_date": date(2025, 1, 31)},
        )

        record = _parse_log(stream)
        assert record["center_id"] == str(value)
        assert record["amount"] == "1.50"
        assert record["due_date"] == "2025-01-31"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        logger = get_logger("test")
        logger.debug("one")
        logger.warning("two", extra={"n": 2})
        logger.error("three")
        assert [r["message"] for r in _parse_all_logs(stream)] == ["one", "two", "three"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(tenant_id="t1", actor_id="a1")
        assert LogContext.get_all() == {"tenant_id": "t1", "actor_id": "a1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(center_code="OPS")

    def test_clear(self):
        LogContext.set(tenant_id="t1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner", bill_id="b1"):
            assert LogContext.get_all() == {"operation": "inner", "bill_id": "b1"}
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_unknown_and_none(self):
        with LogContext.bind(center_code="OPS", entry_id=None, correlation_id="c1"):
            assert LogContext.get_all() == {"correlation_id": "c1"}
        assert LogContext.get_all() == {}

    def test_additive_set(self):
        LogContext.set(tenant_id="t1")
        LogContext.set(actor_id="a1", tenant_id=None)
        assert LogContext.get_all() == {"tenant_id": "t1", "actor_id": "a1"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("backoffice").handlers) == 1

    def test_does_not_propagate_to_root(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        assert logging.getLogger("backoffice").propagate is False

    def test_get_logger_returns_child(self):
        assert get_logger("services.bill").name == "backoffice.services.bill"

    def test_reset_allows_reconfigure(self):
        first, _ = _make_handler()
        second, stream = _make_handler()
        configure_logging(handler=first)
        reset_logging()
        configure_logging(handler=second)
        get_logger("test").info("after reset")
        assert _parse_log(stream)["message"] == "after reset"
