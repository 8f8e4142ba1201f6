"""
Tests for the Wallet Calculator.

Covers:
- Balances per configured wallet from IN / OUT entries
- Credit entries never touching a wallet
- Transfer validation and the two ledger legs
"""

import pytest

from pos_engines.wallets import WalletCalculator
from pos_kernel.domain.records import Direction, LedgerCategory
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidTransferError,
)

WALLETS = ("Cash", "Bank Transfer", "Mobile Money", "Safe")


def bdt(amount) -> Money:
    return Money.of(str(amount), "BDT")


class TestWalletBalances:

    def setup_method(self):
        self.calculator = WalletCalculator()

    def test_in_minus_out_per_wallet(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "1000", method="Cash"),
            make_entry(LedgerCategory.EXPENSE, "150", method="cash"),
            make_entry(LedgerCategory.CUSTOMER_PAYMENT, "400", method="Bank Transfer"),
            make_entry(LedgerCategory.SUPPLIER_PAYMENT, "100", method="Mobile Money"),
        ]

        balances = self.calculator.balances(entries, WALLETS, "BDT")

        assert balances.balances["Cash"] == bdt(850)
        assert balances.balances["Bank Transfer"] == bdt(400)
        assert balances.balances["Mobile Money"] == bdt(-100)
        assert balances.balances["Safe"] == bdt(0)
        assert balances.total == bdt(1150)

    def test_credit_and_unknown_methods_ignored(self, make_entry):
        entries = [
            make_entry(LedgerCategory.SALE, "300", method="Credit"),
            make_entry(LedgerCategory.SALE, "300", method="Card"),
        ]

        balances = self.calculator.balances(entries, WALLETS, "BDT")

        assert balances.total == bdt(0)

    def test_lookup_is_case_insensitive(self, make_entry):
        balances = self.calculator.balances(
            [make_entry(LedgerCategory.SALE, "5", method="Cash")], WALLETS, "BDT"
        )

        assert balances.get("CASH") == bdt(5)
        assert balances.resolve("bank transfer") == "Bank Transfer"
        assert balances.get("Crypto") is None


class TestPlanTransfer:

    def setup_method(self):
        self.calculator = WalletCalculator()

    def _balances(self, make_entry):
        return self.calculator.balances(
            [make_entry(LedgerCategory.SALE, "1000", method="Cash")], WALLETS, "BDT"
        )

    def test_transfer_builds_two_legs(self, make_entry):
        balances = self._balances(make_entry)
        timestamp = make_entry().timestamp

        plan = self.calculator.plan_transfer(
            balances, "cash", "Safe", bdt("600"),
            tenant_id="tenant-1", transfer_id="tr-1", timestamp=timestamp,
        )

        out_leg, in_leg = plan.legs
        assert out_leg.entry_id == "tr-1-out"
        assert out_leg.direction is Direction.OUT
        assert out_leg.method == "Cash"
        assert in_leg.entry_id == "tr-1-in"
        assert in_leg.direction is Direction.IN
        assert in_leg.method == "Safe"
        assert {leg.category for leg in plan.legs} == {LedgerCategory.TRANSFER}
        assert {leg.reference_id for leg in plan.legs} == {"tr-1"}

    def test_transfer_leaves_total_unchanged(self, make_entry):
        entries = [make_entry(LedgerCategory.SALE, "1000", method="Cash")]
        balances = self.calculator.balances(entries, WALLETS, "BDT")

        plan = self.calculator.plan_transfer(
            balances, "Cash", "Safe", bdt("250"),
            tenant_id="tenant-1", transfer_id="tr-2", timestamp=entries[0].timestamp,
        )
        after = self.calculator.balances(entries + list(plan.legs), WALLETS, "BDT")

        assert after.total == balances.total
        assert after.balances["Cash"] == bdt(750)
        assert after.balances["Safe"] == bdt(250)

    def test_insufficient_funds(self, make_entry):
        with pytest.raises(InsufficientFundsError) as exc_info:
            self.calculator.plan_transfer(
                self._balances(make_entry), "Cash", "Safe", bdt("1000.01"),
                tenant_id="tenant-1", transfer_id="tr-3", timestamp=make_entry().timestamp,
            )

        assert exc_info.value.wallet == "Cash"
        assert exc_info.value.available == "1000"

    def test_same_wallet_rejected(self, make_entry):
        with pytest.raises(InvalidTransferError):
            self.calculator.plan_transfer(
                self._balances(make_entry), "Cash", "CASH", bdt("1"),
                tenant_id="tenant-1", transfer_id="tr-4", timestamp=make_entry().timestamp,
            )

    def test_unknown_wallet_rejected(self, make_entry):
        with pytest.raises(InvalidTransferError):
            self.calculator.plan_transfer(
                self._balances(make_entry), "Cash", "Crypto", bdt("1"),
                tenant_id="tenant-1", transfer_id="tr-5", timestamp=make_entry().timestamp,
            )

    def test_non_positive_amount_rejected(self, make_entry):
        with pytest.raises(InvalidAmountError):
            self.calculator.plan_transfer(
                self._balances(make_entry), "Cash", "Safe", bdt("0"),
                tenant_id="tenant-1", transfer_id="tr-6", timestamp=make_entry().timestamp,
            )
