"""
Records -- data contracts for the credit ledger.

Responsibility:
    Frozen records that flow between the storage boundary and the pure
    engines: ledger entries, payable obligations, sale records with
    structured line items, and cash shifts.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Records are built by callers or by
    the document mapper and are never mutated; "updates" return copies.

Failure modes:
    - InvalidAmountError for a negative ledger or sale amount
    - InvalidObligationError for inconsistent obligation totals
    - CurrencyMismatchError when one record mixes currencies
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pos_kernel.domain.payment_status import PaymentStatus, classify_payment_status
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidObligationError,
)

CREDIT_METHOD = "credit"
CASH_METHOD = "cash"


def is_credit_method(method: str | None) -> bool:
    """True for the on-account payment method, in any letter case."""
    return (method or "").strip().lower() == CREDIT_METHOD


def is_cash_method(method: str | None) -> bool:
    return (method or "").strip().lower() == CASH_METHOD


def _require_aware(value: datetime, name: str) -> None:
    if value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware, got {value!r}")


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    """Money flowing into (IN) or out of (OUT) the shop."""

    IN = "IN"
    OUT = "OUT"


class LedgerCategory(str, Enum):
    SALE = "SALE"
    PURCHASE = "PURCHASE"
    EXPENSE = "EXPENSE"
    CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"


class Party(str, Enum):
    """Which side of the ledger an entity sits on."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"

    @property
    def charge_category(self) -> LedgerCategory:
        """Category whose credit entries create what the party owes / is owed."""
        if self is Party.CUSTOMER:
            return LedgerCategory.SALE
        return LedgerCategory.PURCHASE

    @property
    def payment_category(self) -> LedgerCategory:
        if self is Party.CUSTOMER:
            return LedgerCategory.CUSTOMER_PAYMENT
        return LedgerCategory.SUPPLIER_PAYMENT


@dataclass(frozen=True)
class LedgerEntry:
    """
    One immutable financial movement.

    Contract:
        ``amount`` is non-negative; the sign lives in ``direction``.
        ``method`` is free-form (Cash, Bank Transfer, Mobile Money, Credit)
        and compared case-insensitively where it matters.
        ``actor_id`` is the cashier or user who recorded the movement, when
        known; drawer reconciliation uses it to keep cashiers apart.

    Non-goals:
        - Never edited or deleted once written; corrections are new
          ADJUSTMENT entries.
    """

    entry_id: str
    tenant_id: str
    direction: Direction
    category: LedgerCategory
    amount: Money
    method: str
    timestamp: datetime
    entity_id: str | None = None
    reference_id: str | None = None
    description: str | None = None
    actor_id: str | None = None

    def __post_init__(self) -> None:
        if self.amount.is_negative:
            raise InvalidAmountError(
                self.amount.amount, "ledger entry amount must be >= 0"
            )
        _require_aware(self.timestamp, "timestamp")
        if not isinstance(self.direction, Direction):
            object.__setattr__(self, "direction", Direction(self.direction))
        if not isinstance(self.category, LedgerCategory):
            object.__setattr__(self, "category", LedgerCategory(self.category))

    @property
    def is_credit(self) -> bool:
        return is_credit_method(self.method)

    @property
    def is_cash(self) -> bool:
        return is_cash_method(self.method)

    @property
    def currency(self) -> Currency:
        return self.amount.currency


# ---------------------------------------------------------------------------
# Obligations
# ---------------------------------------------------------------------------


class ObligationKind(str, Enum):
    SALE = "sale"
    PURCHASE_ORDER = "purchase_order"


@dataclass(frozen=True)
class Obligation:
    """
    A payable: a credit sale owed by a customer or a purchase order owed to
    a supplier.

    Contract:
        total > 0 and 0 <= amount_paid <= total, both in one currency.
        amount_paid only ever grows (see ``with_amount_paid``).

    Guarantees:
        - ``due`` and ``status`` are derived, never stored separately.
    """

    obligation_id: str
    total: Money
    amount_paid: Money
    created_at: datetime
    is_credit: bool = True
    entity_id: str | None = None
    kind: ObligationKind = ObligationKind.SALE

    def __post_init__(self) -> None:
        if self.total.currency != self.amount_paid.currency:
            raise CurrencyMismatchError(
                expected=self.total.currency.code,
                received=self.amount_paid.currency.code,
            )
        if not self.total.is_positive:
            raise InvalidObligationError(
                self.obligation_id, f"total must be > 0, got {self.total}"
            )
        if self.amount_paid.is_negative:
            raise InvalidObligationError(
                self.obligation_id,
                f"amount_paid must be >= 0, got {self.amount_paid}",
            )
        if self.amount_paid > self.total:
            raise InvalidObligationError(
                self.obligation_id,
                f"amount_paid {self.amount_paid} exceeds total {self.total}",
            )
        _require_aware(self.created_at, "created_at")

    @property
    def currency(self) -> Currency:
        return self.total.currency

    @property
    def due(self) -> Money:
        return self.total - self.amount_paid

    @property
    def status(self) -> PaymentStatus:
        return classify_payment_status(self.amount_paid, self.total)

    def with_amount_paid(self, new_amount_paid: Money) -> Obligation:
        """Copy with a new cumulative paid amount; never decreases."""
        if new_amount_paid < self.amount_paid:
            raise InvalidObligationError(
                self.obligation_id,
                f"amount_paid cannot decrease from {self.amount_paid} "
                f"to {new_amount_paid}",
            )
        return replace(self, amount_paid=new_amount_paid)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SaleItem:
    """One line of a sale."""

    product_id: str
    quantity: Decimal
    unit_price: Money

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, Decimal):
            object.__setattr__(self, "quantity", Decimal(str(self.quantity)))

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class SaleRecord:
    """
    A completed sale as stored by the till.

    Line items are structured; JSON encoding happens only in the document
    mapper.
    """

    sale_id: str
    total: Money
    completed_at: datetime
    payment_method: str
    customer_id: str | None = None
    items: tuple[SaleItem, ...] = ()
    subtotal: Money | None = None
    discount: Money | None = None
    tax: Money | None = None
    cashier_id: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.total.is_negative:
            raise InvalidAmountError(self.total.amount, "sale total must be >= 0")
        _require_aware(self.completed_at, "completed_at")
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    @property
    def is_credit(self) -> bool:
        return is_credit_method(self.payment_method)

    def to_obligation(self, amount_paid: Money | None = None) -> Obligation:
        """Project onto an Obligation keyed by the sale's creation time."""
        return Obligation(
            obligation_id=self.sale_id,
            total=self.total,
            amount_paid=(
                amount_paid if amount_paid is not None else Money.zero(self.total.currency)
            ),
            created_at=self.created_at or self.completed_at,
            is_credit=self.is_credit,
            entity_id=self.customer_id,
            kind=ObligationKind.SALE,
        )


# ---------------------------------------------------------------------------
# Cash shifts
# ---------------------------------------------------------------------------


class ShiftStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class VarianceStatus(str, Enum):
    """Counted cash vs. expected cash."""

    BALANCED = "balanced"
    OVER = "over"
    SHORT = "short"

    @classmethod
    def from_variance(cls, variance: Money) -> VarianceStatus:
        if variance.is_zero:
            return cls.BALANCED
        return cls.OVER if variance.is_positive else cls.SHORT


@dataclass(frozen=True)
class CashShift:
    """
    A cash-drawer session.

    Contract:
        OPEN shifts carry only opening data. CLOSED shifts also carry the
        expected balance, the counted closing balance, the variance and the
        close time, none of which change afterwards.
    """

    shift_id: str
    tenant_id: str
    user_id: str
    opening_balance: Money
    opened_at: datetime
    status: ShiftStatus = ShiftStatus.OPEN
    closing_balance: Money | None = None
    expected_balance: Money | None = None
    variance: Money | None = None
    closed_at: datetime | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.opening_balance.is_negative:
            raise InvalidAmountError(
                self.opening_balance.amount, "opening balance must be >= 0"
            )
        _require_aware(self.opened_at, "opened_at")
        if not isinstance(self.status, ShiftStatus):
            object.__setattr__(self, "status", ShiftStatus(self.status))

    @property
    def currency(self) -> Currency:
        return self.opening_balance.currency

    @property
    def is_open(self) -> bool:
        return self.status is ShiftStatus.OPEN

    @property
    def variance_status(self) -> VarianceStatus | None:
        if self.variance is None:
            return None
        return VarianceStatus.from_variance(self.variance)
