"""
Module: pos_engines.ledger
Responsibility:
    Category-partitioned sums over a tenant's ledger, the per-entity
    outstanding balance, and cash movement over a shift window.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel/domain and pos_kernel logging/exceptions.

Invariants enforced:
    - Decimal-only arithmetic through Money; no floats.
    - One currency per call: an entry in any other currency raises
      CurrencyMismatchError.
    - Entity balance is the single source of truth for "how much is owed":
          customer = credit SALE - CUSTOMER_PAYMENT
          supplier = credit PURCHASE - SUPPLIER_PAYMENT

Failure modes:
    - CurrencyMismatchError on mixed currencies.
    - ValueError when a cash window ends before it starts.

Usage:
    from pos_engines.ledger import LedgerAggregator
    from pos_kernel.domain.records import Party

    aggregator = LedgerAggregator()
    totals = aggregator.aggregate(entries, currency="BDT")
    owed = aggregator.entity_balance(entries, "cust-1", Party.CUSTOMER, "BDT")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from pos_engines.tracer import traced_engine
from pos_kernel.domain.records import Direction, LedgerCategory, LedgerEntry, Party
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import CurrencyMismatchError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


def _currency(currency: Currency | str) -> Currency:
    return currency if isinstance(currency, Currency) else Currency(currency)


def _check_currency(entry: LedgerEntry, currency: Currency) -> None:
    if entry.amount.currency != currency:
        raise CurrencyMismatchError(
            expected=currency.code, received=entry.amount.currency.code
        )


@dataclass(frozen=True)
class LedgerTotals:
    """
    Sums of a ledger partitioned by category and payment method.

    Guarantees:
        - Every field is in ``currency``; an empty ledger is all zeros.
        - ``purchases`` is every SALE (what customers bought), split into
          ``cash_payments`` (paid at the till) and ``credit_sales`` (on
          account).
    """

    currency: Currency
    purchases: Money
    cash_payments: Money
    credit_sales: Money
    debt_payments: Money
    credit_purchases: Money
    cash_purchases: Money
    supplier_payments: Money
    expenses: Money
    transfers_in: Money
    transfers_out: Money
    adjustments_in: Money
    adjustments_out: Money
    total_in: Money
    total_out: Money
    entry_count: int = 0

    @property
    def customer_balance(self) -> Money:
        """Credit sales not yet paid back."""
        return self.credit_sales - self.debt_payments

    @property
    def supplier_balance(self) -> Money:
        """Credit purchases not yet paid to suppliers."""
        return self.credit_purchases - self.supplier_payments

    @property
    def payments(self) -> Money:
        """Money actually received from customers (till + debt repayments)."""
        return self.cash_payments + self.debt_payments

    @property
    def net_flow(self) -> Money:
        return self.total_in - self.total_out


@dataclass(frozen=True)
class EntityBalance:
    """
    Outstanding balance of one customer or supplier.

    ``balance = charged - paid``.  Positive means the customer owes the shop
    (or the shop owes the supplier); negative means an over-payment.
    ADJUSTMENT entries are not part of the balance; they are counted in
    ``adjustment_count`` so callers can surface them.
    """

    entity_id: str
    party: Party
    charged: Money
    paid: Money
    entry_count: int = 0
    adjustment_count: int = 0

    @property
    def balance(self) -> Money:
        return self.charged - self.paid

    @property
    def is_settled(self) -> bool:
        return not self.balance.is_positive


@dataclass(frozen=True)
class OutstandingSummary:
    """Per-entity balances for one party with the total still owed."""

    party: Party
    balances: tuple[EntityBalance, ...]
    total_outstanding: Money

    @property
    def debtor_count(self) -> int:
        """Entities with a positive balance."""
        return sum(1 for b in self.balances if b.balance.is_positive)


@dataclass(frozen=True)
class CashMovement:
    """
    Cash-method movement inside a half-open window ``[start, end)``.

    ``cash_sales`` are SALE entries flowing IN, ``cash_adds`` every other
    IN, ``cash_drops`` every OUT.  ``sales_by_method`` covers all SALE
    entries in the window regardless of method (for the Z-report).
    """

    window_start: datetime
    window_end: datetime
    cash_sales: Money
    cash_adds: Money
    cash_drops: Money
    sales_by_method: dict[str, Money] = field(default_factory=dict)

    @property
    def net(self) -> Money:
        return self.cash_sales + self.cash_adds - self.cash_drops


class LedgerAggregator:
    """
    Sum ledger entries by category, entity and cash window.

    Contract:
        Pure functions over already tenant-filtered entries.  Inputs are
        never mutated; order does not matter.
    Non-goals:
        - Does not load entries; callers pass them in.
        - Does not decide which obligations are unpaid (see the allocator).
    """

    @traced_engine("ledger_aggregate", "1.0", fingerprint_fields=("currency",))
    def aggregate(
        self,
        entries: Iterable[LedgerEntry],
        currency: Currency | str,
    ) -> LedgerTotals:
        """Partition every entry into the category/method totals."""
        cur = _currency(currency)
        zero = Money.zero(cur)
        sums: dict[str, Money] = {
            name: zero
            for name in (
                "purchases", "cash_payments", "credit_sales", "debt_payments",
                "credit_purchases", "cash_purchases", "supplier_payments",
                "expenses", "transfers_in", "transfers_out",
                "adjustments_in", "adjustments_out", "total_in", "total_out",
            )
        }
        count = 0

        for entry in entries:
            _check_currency(entry, cur)
            count += 1
            amount = entry.amount
            inbound = entry.direction is Direction.IN

            sums["total_in" if inbound else "total_out"] += amount

            match entry.category:
                case LedgerCategory.SALE:
                    sums["purchases"] += amount
                    if entry.is_credit:
                        sums["credit_sales"] += amount
                    else:
                        sums["cash_payments"] += amount
                case LedgerCategory.CUSTOMER_PAYMENT:
                    sums["debt_payments"] += amount
                case LedgerCategory.PURCHASE:
                    if entry.is_credit:
                        sums["credit_purchases"] += amount
                    else:
                        sums["cash_purchases"] += amount
                case LedgerCategory.SUPPLIER_PAYMENT:
                    sums["supplier_payments"] += amount
                case LedgerCategory.EXPENSE:
                    sums["expenses"] += amount
                case LedgerCategory.TRANSFER:
                    sums["transfers_in" if inbound else "transfers_out"] += amount
                case LedgerCategory.ADJUSTMENT:
                    sums["adjustments_in" if inbound else "adjustments_out"] += amount

        totals = LedgerTotals(currency=cur, entry_count=count, **sums)
        logger.debug("ledger_aggregated", extra={
            "currency": cur.code,
            "entry_count": count,
            "customer_balance": totals.customer_balance,
            "supplier_balance": totals.supplier_balance,
        })
        return totals

    @traced_engine(
        "ledger_entity_balance", "1.0",
        fingerprint_fields=("entity_id", "party", "currency"),
    )
    def entity_balance(
        self,
        entries: Iterable[LedgerEntry],
        entity_id: str,
        party: Party,
        currency: Currency | str,
    ) -> EntityBalance:
        """Outstanding balance for one customer or supplier."""
        cur = _currency(currency)
        return self._entity_balance(
            [e for e in entries if e.entity_id == entity_id], entity_id, party, cur,
        )

    @traced_engine("ledger_outstanding", "1.0", fingerprint_fields=("party", "currency"))
    def outstanding_by_entity(
        self,
        entries: Iterable[LedgerEntry],
        party: Party,
        currency: Currency | str,
    ) -> OutstandingSummary:
        """
        Balances for every entity of ``party`` that appears in the ledger.

        Balances are ordered by entity id.  ``total_outstanding`` sums only
        positive balances, so an over-paid customer never offsets another
        customer's debt.
        """
        cur = _currency(currency)
        relevant = {party.charge_category, party.payment_category}
        grouped: dict[str, list[LedgerEntry]] = {}
        for entry in entries:
            if entry.entity_id and entry.category in relevant:
                grouped.setdefault(entry.entity_id, []).append(entry)

        balances = tuple(
            self._entity_balance(grouped[entity_id], entity_id, party, cur)
            for entity_id in sorted(grouped)
        )
        total = Money.zero(cur)
        for b in balances:
            if b.balance.is_positive:
                total = total + b.balance

        return OutstandingSummary(party=party, balances=balances, total_outstanding=total)

    def _entity_balance(
        self,
        entries: Sequence[LedgerEntry],
        entity_id: str,
        party: Party,
        cur: Currency,
    ) -> EntityBalance:
        charged = Money.zero(cur)
        paid = Money.zero(cur)
        adjustments = 0
        for entry in entries:
            _check_currency(entry, cur)
            if entry.category is party.charge_category and entry.is_credit:
                charged = charged + entry.amount
            elif entry.category is party.payment_category:
                paid = paid + entry.amount
            elif entry.category is LedgerCategory.ADJUSTMENT:
                adjustments += 1

        if adjustments:
            logger.info("entity_balance_adjustments_excluded", extra={
                "entity_id": entity_id,
                "party": party.value,
                "adjustment_count": adjustments,
            })

        return EntityBalance(
            entity_id=entity_id,
            party=party,
            charged=charged,
            paid=paid,
            entry_count=len(entries),
            adjustment_count=adjustments,
        )

    @traced_engine(
        "ledger_cash_movement", "1.0",
        fingerprint_fields=("window_start", "window_end", "currency"),
    )
    def cash_movement(
        self,
        entries: Iterable[LedgerEntry],
        window_start: datetime,
        window_end: datetime,
        currency: Currency | str,
    ) -> CashMovement:
        """Cash in and out of the drawer between ``window_start`` (inclusive)
        and ``window_end`` (exclusive)."""
        if window_end < window_start:
            raise ValueError(
                f"window_end {window_end.isoformat()} is before "
                f"window_start {window_start.isoformat()}"
            )
        cur = _currency(currency)
        zero = Money.zero(cur)
        cash_sales = cash_adds = cash_drops = zero
        by_method: dict[str, Money] = {}

        for entry in entries:
            if not (window_start <= entry.timestamp < window_end):
                continue
            _check_currency(entry, cur)

            if entry.category is LedgerCategory.SALE:
                by_method[entry.method] = by_method.get(entry.method, zero) + entry.amount

            if not entry.is_cash:
                continue
            if entry.direction is Direction.OUT:
                cash_drops = cash_drops + entry.amount
            elif entry.category is LedgerCategory.SALE:
                cash_sales = cash_sales + entry.amount
            else:
                cash_adds = cash_adds + entry.amount

        return CashMovement(
            window_start=window_start,
            window_end=window_end,
            cash_sales=cash_sales,
            cash_adds=cash_adds,
            cash_drops=cash_drops,
            sales_by_method=by_method,
        )
