"""
Tests for the structured log stream (pos_kernel/logging_config.py).

The POS events that matter downstream are checked through the real
engines and services: payments and shift closes carry their scope and the
audit flag, drawer shortfalls and ambiguous matches are warnings, and
kernel errors keep their code and structured fields.
"""

import json
import logging
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO

import pytest

from pos_engines.matching import ObligationMatcher
from pos_kernel.domain.payment_status import PaymentStatus
from pos_kernel.domain.records import LedgerCategory, Party
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import ShiftAlreadyOpenError
from pos_kernel.logging_config import (
    AUDIT_EVENTS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from pos_services import CashShiftService, CreditLedgerService

TENANT = "shop-1"


def bdt(amount) -> Money:
    return Money.of(str(amount), "BDT")


def _events(records: list[dict], message: str) -> list[dict]:
    return [r for r in records if r["message"] == message]


# ---------------------------------------------------------------------------
# POS events through the services and engines
# ---------------------------------------------------------------------------


class TestPaymentEvents:

    def test_payment_received_is_audited_with_scope(
        self, session_factory, clock, config, make_sale, captured_logs
    ):
        service = CreditLedgerService(session_factory, clock, config)
        service.record_sale(TENANT, make_sale("sale-1", "500.00", customer_id="c1"))

        service.receive_payment(
            TENANT, "c1", Party.CUSTOMER, bdt("300.00"), payment_id="pay-1"
        )

        [record] = _events(captured_logs(), "payment_received")
        assert record["level"] == "INFO"
        assert record["logger"] == "pos_kernel.services.credit"
        assert record["audit"] is True
        assert record["scope"] == {"tenant_id": TENANT, "entity_id": "c1"}
        assert record["amount"] == {"amount": "300.00", "currency": "BDT"}
        assert record["payment_id"] == "pay-1"

    def test_obligation_recorded_is_audited(
        self, session_factory, clock, config, make_sale, captured_logs
    ):
        service = CreditLedgerService(session_factory, clock, config)

        service.record_sale(TENANT, make_sale("sale-1", "120.50", customer_id="c1"))

        [record] = _events(captured_logs(), "obligation_recorded")
        assert record["audit"] is True
        assert record["total"] == {"amount": "120.50", "currency": "BDT"}
        assert record["scope"]["entity_id"] == "c1"


class TestShiftEvents:

    def _close(self, session_factory, clock, config, counted):
        shifts = CashShiftService(session_factory, clock, config)
        shifts.open_shift(TENANT, "cashier-1", bdt("1000.00"), shift_id="sh-1")
        clock.advance(hours=8)
        shifts.close_shift(TENANT, "sh-1", bdt(counted))

    def test_short_drawer_is_warning(self, session_factory, clock, config, captured_logs):
        self._close(session_factory, clock, config, "950.00")

        [record] = _events(captured_logs(), "shift_closed")
        assert record["level"] == "WARNING"
        assert record["audit"] is True
        assert record["scope"] == {"tenant_id": TENANT, "shift_id": "sh-1"}
        assert record["variance_status"] == "short"
        assert Decimal(record["variance"]["amount"]) == Decimal("-50")

    def test_balanced_drawer_is_info(self, session_factory, clock, config, captured_logs):
        self._close(session_factory, clock, config, "1000.00")

        [record] = _events(captured_logs(), "shift_closed")
        assert record["level"] == "INFO"
        assert record["variance_status"] == "balanced"

    def test_open_carries_cashier(self, session_factory, clock, config, captured_logs):
        CashShiftService(session_factory, clock, config).open_shift(
            TENANT, "cashier-1", bdt("500.00"), shift_id="sh-1"
        )

        [record] = _events(captured_logs(), "shift_opened")
        assert record["scope"] == {"tenant_id": TENANT, "actor_id": "cashier-1"}
        assert record["opening_balance"]["amount"] == "500.00"


class TestMatchingEvents:

    def test_ambiguous_fuzzy_match_is_warning(self, make_sale, make_entry, captured_logs):
        sales = [make_sale("sale-1", "100"), make_sale("sale-2", "100")]
        entry = make_entry(
            LedgerCategory.SALE, "100", method="Credit", entity_id="c1",
            timestamp=sales[0].completed_at + timedelta(minutes=1),
        )

        ObligationMatcher().match(sales, [entry], "c1")

        [record] = _events(captured_logs(), "fuzzy_match_ambiguous")
        assert record["level"] == "WARNING"
        assert record["candidate_ids"] == ["sale-1", "sale-2"]
        assert record["chosen_id"] == "sale-1"
        assert "audit" not in record


# ---------------------------------------------------------------------------
# Formatter details
# ---------------------------------------------------------------------------


@pytest.fixture
def stream_logger():
    """A fresh pos_kernel configuration writing to a StringIO."""
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield get_logger("tests"), _records
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestFormatter:

    def test_kernel_error_block(self, stream_logger):
        logger, records = stream_logger
        with LogContext.bind(tenant_id=TENANT, actor_id="cashier-7"):
            try:
                raise ShiftAlreadyOpenError(TENANT, "cashier-7", "sh-3")
            except ShiftAlreadyOpenError:
                logger.exception("shift_open_rejected")

        [record] = records()
        error = record["error"]
        assert record["level"] == "ERROR"
        assert error["type"] == "ShiftAlreadyOpenError"
        assert error["code"] == "SHIFT_ALREADY_OPEN"
        assert error["fields"] == {
            "tenant_id": TENANT, "user_id": "cashier-7", "shift_id": "sh-3",
        }
        assert "Traceback" in error["traceback"]
        assert record["scope"] == {"tenant_id": TENANT, "actor_id": "cashier-7"}

    def test_plain_error_has_no_code(self, stream_logger):
        logger, records = stream_logger
        try:
            raise ValueError("bad row")
        except ValueError:
            logger.error("import_failed", exc_info=True)

        error = records()[0]["error"]
        assert error["message"] == "bad row"
        assert "code" not in error
        assert "fields" not in error

    def test_trace_ids_outside_scope(self, stream_logger):
        logger, records = stream_logger
        with LogContext.bind(tenant_id=TENANT, correlation_id="req-1"):
            logger.info("ledger_aggregated")

        [record] = records()
        assert record["correlation_id"] == "req-1"
        assert record["scope"] == {"tenant_id": TENANT}

    def test_no_scope_outside_a_request(self, stream_logger):
        logger, records = stream_logger
        logger.info("document_upgraded")

        [record] = records()
        assert "scope" not in record
        assert "audit" not in record

    def test_domain_values_encoded(self, stream_logger):
        logger, records = stream_logger
        logger.debug("aging_report_generated", extra={
            "as_of": date(2024, 3, 31),
            "status": PaymentStatus.PARTIALLY_PAID,
            "tolerance": Decimal("0.05"),
            "currency": bdt("1").currency,
        })

        [record] = records()
        assert record["as_of"] == "2024-03-31"
        assert record["status"] == "partially_paid"
        assert record["tolerance"] == "0.05"
        assert record["currency"] == "BDT"

    def test_audit_events_cover_money_movements(self):
        assert {"payment_received", "shift_closed", "cash_drop_recorded"} <= AUDIT_EVENTS

    def test_formatter_usable_on_foreign_records(self):
        record = logging.LogRecord("other", logging.INFO, __file__, 1, "hello %s", ("x",), None)

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["message"] == "hello x"
        assert payload["logger"] == "other"


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_nests_and_restores(self):
        with LogContext.bind(tenant_id=TENANT, shift_id="sh-1"):
            with LogContext.bind(entity_id="c1", shift_id=None):
                assert LogContext.get_all() == {
                    "tenant_id": TENANT, "shift_id": "sh-1", "entity_id": "c1",
                }
            assert LogContext.get_all() == {"tenant_id": TENANT, "shift_id": "sh-1"}
        assert LogContext.get_all() == {}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(tenant_id=TENANT):
                raise RuntimeError("rollback")

        assert LogContext.get_all() == {}

    def test_values_stored_as_strings(self):
        LogContext.set(shift_id=42)

        assert LogContext.get_all() == {"shift_id": "42"}

    @pytest.mark.parametrize("field", ["producer", "customer"])
    def test_unknown_field_rejected(self, field):
        with pytest.raises(KeyError):
            LogContext.set(**{field: "x"})
        with pytest.raises(KeyError):
            with LogContext.bind(**{field: "x"}):
                pass

    def test_clear(self):
        LogContext.set(tenant_id=TENANT, trace_id="t-1")
        LogContext.clear()

        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def _fresh(self):
        reset_logging()
        yield
        reset_logging()
        configure_logging(level=logging.DEBUG)

    def test_level_by_name(self):
        stream = StringIO()
        configure_logging(stream=stream, level="warning")

        get_logger("services.shift").info("shift_opened")
        get_logger("services.shift").warning("shift_close_conflict")

        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["shift_close_conflict"]

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            configure_logging(level="chatty")

    def test_second_call_ignored(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())

        assert len(logging.getLogger("pos_kernel").handlers) == 1

    def test_logger_namespace(self):
        assert get_logger("engines.allocation").name == "pos_kernel.engines.allocation"
