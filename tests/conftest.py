"""
Pytest fixtures for the POS credit ledger test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A SQLite-backed session factory (one database file per test)
- A deterministic clock and the default configuration
- Builders for ledger entries, obligations and sales
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from itertools import count

import pytest

from pos_config import PosConfig, reset_config_cache
from pos_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from pos_kernel.domain.clock import DeterministicClock
from pos_kernel.domain.records import (
    Direction,
    LedgerCategory,
    LedgerEntry,
    Obligation,
    ObligationKind,
    SaleRecord,
)
from pos_kernel.domain.values import Money
from pos_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

CURRENCY = "BDT"
T0 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


def bdt(amount) -> Money:
    return Money.of(str(amount), CURRENCY)


# =============================================================================
# Logging / config fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _reset_config():
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def captured_logs():
    """
    Capture pos_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            FifoAllocator().allocate([], bdt(100))
            logs = captured_logs()
            assert any(r["message"] == "allocation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pos_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


@pytest.fixture
def config() -> PosConfig:
    return PosConfig()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(T0)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite database with every ledger table created."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


# =============================================================================
# Record builders
# =============================================================================


@pytest.fixture
def make_entry():
    """Build a LedgerEntry with sensible defaults and unique ids."""
    ids = count(1)

    def _make(
        category=LedgerCategory.SALE,
        amount="100.00",
        method="Cash",
        direction=None,
        entity_id=None,
        reference_id=None,
        timestamp=None,
        tenant_id="tenant-1",
        entry_id=None,
        actor_id=None,
    ) -> LedgerEntry:
        category = LedgerCategory(category)
        if direction is None:
            direction = (
                Direction.OUT
                if category in (
                    LedgerCategory.PURCHASE,
                    LedgerCategory.EXPENSE,
                    LedgerCategory.SUPPLIER_PAYMENT,
                )
                else Direction.IN
            )
        return LedgerEntry(
            entry_id=entry_id or f"entry-{next(ids)}",
            tenant_id=tenant_id,
            direction=direction,
            category=category,
            amount=bdt(amount),
            method=method,
            timestamp=timestamp or T0,
            entity_id=entity_id,
            reference_id=reference_id,
            actor_id=actor_id,
        )

    return _make


@pytest.fixture
def make_obligation():
    """Build an Obligation; ``day`` offsets created_at from T0."""

    def _make(
        obligation_id,
        total,
        paid="0",
        day=0,
        is_credit=True,
        entity_id="cust-1",
        kind=ObligationKind.SALE,
    ) -> Obligation:
        return Obligation(
            obligation_id=obligation_id,
            total=bdt(total),
            amount_paid=bdt(paid),
            created_at=T0 + timedelta(days=day),
            is_credit=is_credit,
            entity_id=entity_id,
            kind=kind,
        )

    return _make


@pytest.fixture
def make_sale():
    def _make(
        sale_id,
        total,
        method="Credit",
        customer_id=None,
        completed_at=None,
    ) -> SaleRecord:
        return SaleRecord(
            sale_id=sale_id,
            total=bdt(total),
            completed_at=completed_at or T0,
            payment_method=method,
            customer_id=customer_id,
            subtotal=bdt(total),
            discount=bdt("0"),
            tax=bdt("0"),
        )

    return _make

