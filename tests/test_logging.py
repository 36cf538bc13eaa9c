"""
Structured logging: context propagation and JSON formatting.
"""

import json
import logging
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def format_record(message="event", exc=None, **extra):
    exc_info = (type(exc), exc, None) if exc is not None else None
    record = logging.LogRecord("inventory_kernel.test", logging.INFO, __file__, 1, message, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(StructuredFormatter().format(record))


class TestLogContext:
    def test_set_ignores_none(self):
        LogContext.set(actor_id="a1")
        LogContext.set(actor_id=None, batch_id="b1")
        assert LogContext.get_all() == {"actor_id": "a1", "batch_id": "b1"}

    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", import_source="sheet.csv"):
            assert LogContext.get_all() == {"correlation_id": "inner", "import_source": "sheet.csv"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_clear(self):
        LogContext.set(import_source="legacy", batch_id="b2")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="request_id"):
            LogContext.set(request_id="r1")
        with pytest.raises(ValueError):
            with LogContext.bind(request_id="r1"):
                pass


class TestStructuredFormatter:
    def test_base_fields(self):
        payload = format_record("collection_committed")
        assert payload["message"] == "collection_committed"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "inventory_kernel.test"
        assert "ts" in payload

    def test_context_and_extra_fields(self):
        item_id = uuid4()
        with LogContext.bind(batch_id="b-7"):
            payload = format_record(item_id=item_id, quantity=Decimal("2.50"))
        assert payload["batch_id"] == "b-7"
        assert payload["item_id"] == str(item_id)
        assert payload["quantity"] == "2.50"

    def test_exception_fields(self):
        exc = InsufficientStockError("item-1", "Rice", Decimal("3"), Decimal("5"))
        payload = format_record("submit_withdrawal_rejected", exc=exc)
        assert payload["exc_type"] == "InsufficientStockError"
        assert payload["exc_code"] == "INSUFFICIENT_STOCK"
        assert payload["exc_item_name"] == "Rice"
        assert payload["exc_available"] == "3"
        assert "traceback" in payload


def test_get_logger_namespace():
    assert get_logger("services.ledger").name == "inventory_kernel.services.ledger"
