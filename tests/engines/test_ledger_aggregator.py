"""
Tests for the Ledger Aggregator.

Covers:
- Category / method partitioning
- Customer and supplier entity balances
- Outstanding summary across entities
- Cash movement inside a shift window
- Currency and window validation
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from pos_engines.ledger import LedgerAggregator
from pos_kernel.domain.records import Direction, LedgerCategory, Party
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import CurrencyMismatchError


def bdt(amount) -> Money:
    return Money.of(str(amount), "BDT")


class TestAggregate:
    """Partitioning of a whole ledger."""

    def setup_method(self):
        self.aggregator = LedgerAggregator()

    def test_empty_ledger_is_all_zero(self):
        totals = self.aggregator.aggregate([], "BDT")

        assert totals.purchases == bdt(0)
        assert totals.customer_balance == bdt(0)
        assert totals.supplier_balance == bdt(0)
        assert totals.entry_count == 0

    def test_sales_split_by_credit_method(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "500", method="Cash"),
            make_entry(LedgerCategory.SALE, "300", method="Credit"),
            make_entry(LedgerCategory.SALE, "200", method="credit"),
            make_entry(LedgerCategory.CUSTOMER_PAYMENT, "150", method="Cash"),
        ]

        totals = self.aggregator.aggregate(entries, "BDT")

        assert totals.purchases == bdt(1000)
        assert totals.cash_payments == bdt(500)
        assert totals.credit_sales == bdt(500)
        assert totals.debt_payments == bdt(150)
        assert totals.customer_balance == bdt(350)
        assert totals.payments == bdt(650)

    def test_supplier_side(self, make_entry):
        entries = [
            make_entry(LedgerCategory.PURCHASE, "800", method="Credit"),
            make_entry(LedgerCategory.PURCHASE, "100", method="Cash"),
            make_entry(LedgerCategory.SUPPLIER_PAYMENT, "300", method="Bank Transfer"),
            make_entry(LedgerCategory.EXPENSE, "40", method="Cash"),
        ]

        totals = self.aggregator.aggregate(entries, "BDT")

        assert totals.credit_purchases == bdt(800)
        assert totals.cash_purchases == bdt(100)
        assert totals.supplier_payments == bdt(300)
        assert totals.supplier_balance == bdt(500)
        assert totals.expenses == bdt(40)
        assert totals.total_out == bdt(1240)

    def test_transfers_and_adjustments_by_direction(self, make_entry):
        entries = [
            make_entry(LedgerCategory.TRANSFER, "50", direction=Direction.OUT),
            make_entry(LedgerCategory.TRANSFER, "50", method="Safe", direction=Direction.IN),
            make_entry(LedgerCategory.ADJUSTMENT, "7", direction=Direction.IN),
        ]

        totals = self.aggregator.aggregate(entries, "BDT")

        assert totals.transfers_in == bdt(50)
        assert totals.transfers_out == bdt(50)
        assert totals.adjustments_in == bdt(7)
        assert totals.adjustments_out == bdt(0)
        assert totals.net_flow == bdt(7)

    def test_zero_amount_entries_change_nothing(self, make_entry):
        totals = self.aggregator.aggregate(
            [make_entry(LedgerCategory.SALE, "0", method="Credit")], "BDT"
        )

        assert totals.credit_sales == bdt(0)
        assert totals.entry_count == 1

    def test_decimal_precision_is_exact(self, make_entry):
        entries = [make_entry(LedgerCategory.SALE, "0.10", method="Credit") for _ in range(3)]

        totals = self.aggregator.aggregate(entries, "BDT")

        assert totals.credit_sales.amount == Decimal("0.30")

    def test_mixed_currency_rejected(self, make_entry):
        with pytest.raises(CurrencyMismatchError):
            self.aggregator.aggregate([make_entry(LedgerCategory.SALE, "10")], "USD")


class TestEntityBalance:
    """Balance of a single customer or supplier."""

    def setup_method(self):
        self.aggregator = LedgerAggregator()

    def test_customer_balance_is_credit_sales_minus_payments(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "500", method="Credit", entity_id="c1"),
            make_entry(LedgerCategory.SALE, "300", method="Credit", entity_id="c1"),
            make_entry(LedgerCategory.SALE, "999", method="Cash", entity_id="c1"),
            make_entry(LedgerCategory.CUSTOMER_PAYMENT, "650", entity_id="c1"),
            make_entry(LedgerCategory.SALE, "400", method="Credit", entity_id="c2"),
        ]

        balance = self.aggregator.entity_balance(entries, "c1", Party.CUSTOMER, "BDT")

        assert balance.charged == bdt(800)
        assert balance.paid == bdt(650)
        assert balance.balance == bdt(150)
        assert balance.entry_count == 4
        assert not balance.is_settled

    def test_supplier_balance(self, make_entry):
        entries = [
            make_entry(LedgerCategory.PURCHASE, "1000", method="Credit", entity_id="s1"),
            make_entry(LedgerCategory.SUPPLIER_PAYMENT, "1000", entity_id="s1"),
        ]

        balance = self.aggregator.entity_balance(entries, "s1", Party.SUPPLIER, "BDT")

        assert balance.balance == bdt(0)
        assert balance.is_settled

    def test_adjustments_counted_but_excluded(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "100", method="Credit", entity_id="c1"),
            make_entry(LedgerCategory.ADJUSTMENT, "30", entity_id="c1"),
        ]

        balance = self.aggregator.entity_balance(entries, "c1", Party.CUSTOMER, "BDT")

        assert balance.balance == bdt(100)
        assert balance.adjustment_count == 1

    def test_overpayment_goes_negative(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "100", method="Credit", entity_id="c1"),
            make_entry(LedgerCategory.CUSTOMER_PAYMENT, "150", entity_id="c1"),
        ]

        balance = self.aggregator.entity_balance(entries, "c1", Party.CUSTOMER, "BDT")

        assert balance.balance == bdt(-50)
        assert balance.is_settled


class TestOutstandingByEntity:

    def test_summary_counts_only_debtors(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "100", method="Credit", entity_id="b"),
            make_entry(LedgerCategory.SALE, "200", method="Credit", entity_id="a"),
            make_entry(LedgerCategory.CUSTOMER_PAYMENT, "250", entity_id="a"),
            make_entry(LedgerCategory.SALE, "80", method="Cash"),
        ]

        summary = LedgerAggregator().outstanding_by_entity(entries, Party.CUSTOMER, "BDT")

        assert [b.entity_id for b in summary.balances] == ["a", "b"]
        assert summary.total_outstanding == bdt(100)
        assert summary.debtor_count == 1


class TestCashMovement:
    """Cash flow inside [window_start, window_end)."""

    def setup_method(self):
        self.aggregator = LedgerAggregator()

    def test_window_is_half_open(self, make_entry):
        start = make_entry().timestamp
        end = start + timedelta(hours=8)
        entries = [
            make_entry(LedgerCategory.SALE, "100", timestamp=start),
            make_entry(LedgerCategory.SALE, "200", timestamp=end - timedelta(seconds=1)),
            make_entry(LedgerCategory.SALE, "400", timestamp=end),
            make_entry(LedgerCategory.SALE, "800", timestamp=start - timedelta(seconds=1)),
        ]

        movement = self.aggregator.cash_movement(entries, start, end, "BDT")

        assert movement.cash_sales == bdt(300)

    def test_drops_adds_and_non_cash(self, make_entry):
        start = make_entry().timestamp
        end = start + timedelta(hours=1)
        entries = [
            make_entry(LedgerCategory.SALE, "2500", method="cash"),
            make_entry(LedgerCategory.TRANSFER, "300", direction=Direction.OUT),
            make_entry(LedgerCategory.TRANSFER, "50", direction=Direction.IN),
            make_entry(LedgerCategory.SALE, "700", method="Card"),
            make_entry(LedgerCategory.SALE, "90", method="Credit"),
        ]

        movement = self.aggregator.cash_movement(entries, start, end, "BDT")

        assert movement.cash_sales == bdt(2500)
        assert movement.cash_drops == bdt(300)
        assert movement.cash_adds == bdt(50)
        assert movement.net == bdt(2250)
        assert movement.sales_by_method == {
            "cash": bdt(2500),
            "Card": bdt(700),
            "Credit": bdt(90),
        }

    def test_inverted_window_rejected(self, make_entry):
        start = make_entry().timestamp
        with pytest.raises(ValueError):
            self.aggregator.cash_movement([], start, start - timedelta(seconds=1), "BDT")
