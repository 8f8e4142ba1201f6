"""
Pure domain layer.

Value objects and records with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (beyond the injectable Clock interface)
- I/O

All domain objects are immutable and deterministic.
"""

from pos_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pos_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pos_kernel.domain.payment_status import PaymentStatus, classify_payment_status
from pos_kernel.domain.records import (
    CashShift,
    Direction,
    LedgerCategory,
    LedgerEntry,
    Obligation,
    ObligationKind,
    Party,
    SaleItem,
    SaleRecord,
    ShiftStatus,
    VarianceStatus,
    is_cash_method,
    is_credit_method,
)
from pos_kernel.domain.values import Currency, Money, max_money, min_money, sum_money

__all__ = [
    # Values
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Money",
    "max_money",
    "min_money",
    "sum_money",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Status
    "PaymentStatus",
    "classify_payment_status",
    # Records
    "CashShift",
    "Direction",
    "LedgerCategory",
    "LedgerEntry",
    "Obligation",
    "ObligationKind",
    "Party",
    "SaleItem",
    "SaleRecord",
    "ShiftStatus",
    "VarianceStatus",
    "is_cash_method",
    "is_credit_method",
]
