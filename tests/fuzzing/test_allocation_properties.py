"""
Property-based tests for allocation, balance splitting and status
classification.

Properties:
- Conservation: applied + remainder == payment, for every payment
- FIFO: a later obligation receives money only once every earlier
  eligible obligation is fully paid
- No obligation is ever paid past its total
- Ledger balance, balance split and one-shot allocation agree
- The classifier is deterministic and monotone in the paid amount
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from pos_engines.allocation import FifoAllocator, fifo_order
from pos_engines.ledger import LedgerAggregator
from pos_kernel.domain.payment_status import PaymentStatus, classify_payment_status
from pos_kernel.domain.records import (
    Direction,
    LedgerCategory,
    LedgerEntry,
    Obligation,
    Party,
)
from pos_kernel.domain.values import Money

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
SETTINGS = settings(
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


def cents(value: int) -> Money:
    return Money(amount=Decimal(value) / 100, currency="BDT")


@composite
def obligations(draw, min_size=0, max_size=12):
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    result = []
    for i in range(count):
        total = draw(st.integers(min_value=1, max_value=100_000))
        paid = draw(st.integers(min_value=0, max_value=total))
        result.append(
            Obligation(
                obligation_id=f"ob-{i:03d}",
                total=cents(total),
                amount_paid=cents(paid),
                created_at=T0 + timedelta(hours=draw(st.integers(min_value=0, max_value=48))),
                is_credit=draw(st.booleans()),
            )
        )
    return result


def _eligible(items):
    return [ob for ob in fifo_order(items) if ob.is_credit and ob.due.is_positive]


class TestAllocationProperties:

    @given(items=obligations(), payment=st.integers(min_value=0, max_value=1_000_000))
    @SETTINGS
    def test_conservation(self, items, payment):
        result = FifoAllocator().allocate(items, cents(payment))

        assert result.total_applied + result.remainder == cents(payment)
        assert not result.remainder.is_negative

    @given(items=obligations(), payment=st.integers(min_value=0, max_value=1_000_000))
    @SETTINGS
    def test_never_overpays(self, items, payment):
        result = FifoAllocator().allocate(items, cents(payment))

        for line in result.lines:
            assert line.amount_applied.is_positive
            assert line.new_amount_paid <= line.total

    @given(items=obligations(), payment=st.integers(min_value=0, max_value=1_000_000))
    @SETTINGS
    def test_fifo_prefix(self, items, payment):
        result = FifoAllocator().allocate(items, cents(payment))

        applied_order = [line.obligation_id for line in result.lines]
        eligible_order = [ob.obligation_id for ob in _eligible(items)]
        assert applied_order == eligible_order[: len(applied_order)]
        for line in result.lines[:-1]:
            assert line.is_fully_paid

    @given(items=obligations(), payment=st.integers(min_value=0, max_value=1_000_000))
    @SETTINGS
    def test_remainder_only_when_everything_settled(self, items, payment):
        result = FifoAllocator().allocate(items, cents(payment))

        if result.remainder.is_positive:
            assert all(
                after.status is PaymentStatus.PAID
                for after in result.apply_to(_eligible(items))
            )


class TestBalanceConsistency:

    @given(data=st.data())
    @SETTINGS
    def test_ledger_split_and_allocation_agree(self, data):
        totals = data.draw(
            st.lists(st.integers(min_value=1, max_value=50_000), min_size=1, max_size=10)
        )
        paid = data.draw(st.integers(min_value=0, max_value=sum(totals)))

        sales = [
            Obligation(
                obligation_id=f"s-{i:03d}",
                total=cents(total),
                amount_paid=cents(0),
                created_at=T0 + timedelta(days=i),
                entity_id="c1",
            )
            for i, total in enumerate(totals)
        ]
        entries = [
            LedgerEntry(
                entry_id=f"e-{ob.obligation_id}",
                tenant_id="t1",
                direction=Direction.IN,
                category=LedgerCategory.SALE,
                amount=ob.total,
                method="Credit",
                timestamp=ob.created_at,
                entity_id="c1",
                reference_id=ob.obligation_id,
            )
            for ob in sales
        ]
        if paid:
            entries.append(
                LedgerEntry(
                    entry_id="e-payment",
                    tenant_id="t1",
                    direction=Direction.IN,
                    category=LedgerCategory.CUSTOMER_PAYMENT,
                    amount=cents(paid),
                    method="Cash",
                    timestamp=T0 + timedelta(days=30),
                    entity_id="c1",
                )
            )

        balance = LedgerAggregator().entity_balance(entries, "c1", Party.CUSTOMER, "BDT")
        allocator = FifoAllocator()
        split = allocator.split_from_balance(sales, balance.balance)
        allocation = allocator.allocate(sales, cents(paid))

        assert balance.balance == cents(sum(totals) - paid)
        assert split.total_due == balance.balance
        assert split.unattributed_balance.is_zero
        assert allocation.remainder.is_zero
        settled = allocation.new_amounts_paid
        for piece in split.splits:
            assert piece.paid == settled.get(piece.obligation_id, cents(0))


class TestClassifierProperties:

    @given(
        total=st.integers(min_value=1, max_value=1_000_000),
        paid=st.integers(min_value=0, max_value=2_000_000),
        extra=st.integers(min_value=0, max_value=1_000_000),
    )
    @settings(max_examples=300)
    def test_deterministic_and_monotone(self, total, paid, extra):
        first = classify_payment_status(cents(paid), cents(total))

        assert classify_payment_status(cents(paid), cents(total)) is first
        assert classify_payment_status(Decimal(paid), Decimal(total)) is first
        if first is PaymentStatus.PAID:
            assert classify_payment_status(cents(paid + extra), cents(total)) is PaymentStatus.PAID
        if paid == 0:
            assert first is PaymentStatus.NOT_PAID
