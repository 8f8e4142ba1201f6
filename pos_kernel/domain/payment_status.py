"""
Payment status -- the one classifier of paid vs. total.

Every place that needs a tri-state status (obligation records, allocation
lines, balance splits, the ORM write path and the document mapper) calls
``classify_payment_status``. There is no second implementation.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pos_kernel.domain.values import Money


class PaymentStatus(str, Enum):
    """Payment state of a credit obligation."""

    NOT_PAID = "not_paid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


def _as_decimal(value: Money | Decimal | int) -> Decimal:
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, float):
        raise TypeError("payment status cannot be classified from a float")
    return Decimal(value)


def classify_payment_status(
    amount_paid: Money | Decimal | int,
    total: Money | Decimal | int,
) -> PaymentStatus:
    """
    Classify an obligation's payment status.

    Rules, applied in order:
        paid >= total       -> PAID
        0 < paid < total    -> PARTIALLY_PAID
        paid <= 0           -> NOT_PAID

    Deterministic and idempotent: the same inputs always give the same
    status, and a PAID obligation stays PAID for any larger paid amount.

    Raises:
        CurrencyMismatchError: both arguments are Money in different
            currencies.
    """
    if isinstance(amount_paid, Money) and isinstance(total, Money):
        # Money comparison enforces a shared currency.
        if amount_paid >= total:
            return PaymentStatus.PAID
        return (
            PaymentStatus.PARTIALLY_PAID
            if amount_paid.is_positive
            else PaymentStatus.NOT_PAID
        )

    paid = _as_decimal(amount_paid)
    owed = _as_decimal(total)
    if paid >= owed:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.NOT_PAID
