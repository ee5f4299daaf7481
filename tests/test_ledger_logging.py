"""
Tests for structured logging: JSON formatting, context propagation and the
ledger logger namespace.
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.logging_config import LogContext, StructuredFormatter, get_logger
from ledger_kernel.models.account import SystemAccountKey


def _format(**extra):
    logger = logging.getLogger("ledger_kernel.test")
    record = logger.makeRecord(
        logger.name, logging.INFO, __file__, 1, "journal_entry_posted", (), None, extra=extra
    )
    return json.loads(StructuredFormatter().format(record))


class TestStructuredFormatter:
    """One JSON object per record."""

    def test_core_fields(self):
        payload = _format()

        assert payload["message"] == "journal_entry_posted"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "ledger_kernel.test"
        assert "ts" in payload

    def test_domain_types_serialized(self):
        entry_id = uuid4()
        payload = _format(
            entry_id=entry_id,
            amount=Decimal("80.000"),
            entry_date=date(2026, 1, 15),
            key=SystemAccountKey.BANK_MAIN,
        )

        assert payload["entry_id"] == str(entry_id)
        assert payload["amount"] == "80.000"
        assert payload["entry_date"] == "2026-01-15"
        assert payload["key"] == "bank_main"

    def test_ledger_error_fields_included(self):
        logger = logging.getLogger("ledger_kernel.test")
        try:
            raise UnbalancedEntryError("100.000", "90.000")
        except UnbalancedEntryError:
            record = logger.makeRecord(
                logger.name, logging.ERROR, __file__, 1, "posting_failed", (), sys.exc_info()
            )

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["exc_type"] == "UnbalancedEntryError"
        assert payload["exc_code"] == "UNBALANCED_ENTRY"
        assert payload["exc_debits"] == "100.000"
        assert "traceback" in payload


class TestLogContext:
    """Request-scoped fields appear on every record."""

    def test_bound_fields_in_payload(self):
        hospital_id = uuid4()
        with LogContext.bind(hospital_id=hospital_id, source_module="BILLING"):
            payload = _format()

        assert payload["hospital_id"] == str(hospital_id)
        assert payload["source_module"] == "BILLING"

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner"):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all()["actor_id"] == "outer"

    def test_none_values_ignored(self):
        with LogContext.bind(hospital_id=None):
            assert "hospital_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(tenant="x")


class TestLoggerNamespace:
    def test_get_logger_prefix(self):
        assert get_logger("modules.billing.service").name == "ledger_kernel.modules.billing.service"

    def test_service_logs_are_captured(self, captured_logs, billing_service, seeded_hospital,
                                       test_actor_id):
        billing_service.create_insurance_provider(seeded_hospital, "Mutual", test_actor_id)

        messages = [r["message"] for r in captured_logs()]
        assert "insurance_provider_created" in messages
