"""
ORM-level tests: transactional scope, append-only ledger rows, and the
payment_status column kept in step with amount_paid.
"""

from decimal import Decimal

import pytest
from sqlalchemy import inspect, select

from pos_kernel.db import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    reset_engine,
    session_scope,
)
from pos_kernel.exceptions import ImmutabilityViolationError
from pos_kernel.models import LedgerEntryModel, ObligationModel


class TestSessionScope:

    def test_commits_on_success(self, session_factory, make_entry):
        entry = make_entry(entry_id="e-1", actor_id="cashier-1")

        with session_scope() as session:
            session.add(LedgerEntryModel.from_dto(entry))

        with session_factory() as session:
            assert session.get(LedgerEntryModel, "e-1").to_dto() == entry

    def test_rolls_back_on_error(self, session_factory, make_entry):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(LedgerEntryModel.from_dto(make_entry(entry_id="e-1")))
                session.flush()
                raise ValueError("abort")

        with session_factory() as session:
            assert session.get(LedgerEntryModel, "e-1") is None

    def test_uninitialized_engine(self, session_factory):
        reset_engine()

        with pytest.raises(RuntimeError):
            get_session_factory()


class TestLedgerEntryRows:

    def test_update_rejected(self, session_factory, make_entry):
        with session_scope() as session:
            session.add(LedgerEntryModel.from_dto(make_entry(entry_id="e-1")))

        with session_factory() as session:
            row = session.get(LedgerEntryModel, "e-1")
            row.description = "edited"
            with pytest.raises(ImmutabilityViolationError) as exc_info:
                session.flush()
            session.rollback()

        assert exc_info.value.entity_type == "LedgerEntry"
        assert exc_info.value.entity_id == "e-1"

    def test_delete_rejected(self, session_factory, make_entry):
        with session_scope() as session:
            session.add(LedgerEntryModel.from_dto(make_entry(entry_id="e-1")))

        with session_factory() as session:
            session.delete(session.get(LedgerEntryModel, "e-1"))
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
            session.rollback()

    def test_timestamps_stay_aware(self, session_factory, make_entry):
        entry = make_entry(entry_id="e-1")
        with session_scope() as session:
            session.add(LedgerEntryModel.from_dto(entry))

        with session_factory() as session:
            stored = session.scalars(select(LedgerEntryModel)).one()
            assert stored.timestamp.tzinfo is not None
            assert stored.timestamp == entry.timestamp


class TestObligationRows:

    def test_status_follows_amount_paid(self, session_factory, make_obligation):
        with session_scope() as session:
            session.add(ObligationModel.from_dto(make_obligation("o-1", "100"), "tenant-1"))

        with session_factory() as session:
            row = session.get(ObligationModel, "o-1")
            assert row.payment_status == "not_paid"
            assert row.version == 1

            row.amount_paid = Decimal("40")
            session.commit()

            assert row.payment_status == "partially_paid"
            assert row.version == 2
            assert row.to_dto().due.amount == Decimal("60.00")


class TestSchema:

    def test_drop_and_recreate(self, session_factory):
        assert "ledger_entries" in inspect(get_engine()).get_table_names()

        drop_tables()
        assert inspect(get_engine()).get_table_names() == []

        create_tables()
        assert {"ledger_entries", "obligations", "cash_shifts"} <= set(
            inspect(get_engine()).get_table_names()
        )
