"""
Module: pos_engines.shift
Responsibility:
    Cash-drawer shift lifecycle: open, compute the expected closing cash,
    close against a counted amount, and summarize the shift (Z-report).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reconciler never
    reads the clock; ``opened_at`` / ``closed_at`` / ``as_of`` are passed in.

State machine:

    OPEN --close_shift(actual)--> CLOSED   (terminal)

Invariants enforced:
    - expected = opening + cash sales + cash adds - cash drops, over the
      Cash-method entries in [opened_at, closed_at) that belong to the
      shift's drawer.
    - An entry belongs to the drawer when it is the shift's tenant, was
      recorded by the shift's cashier or by nobody in particular, and,
      for a TRANSFER, references the shift id.  Concurrent shifts of other
      cashiers and wallet transfers never move this drawer's figures.
    - variance = actual - expected; zero is ``balanced``, positive ``over``,
      negative ``short``.
    - A closed shift's expected, closing, variance and closed_at never
      change.

Failure modes:
    - InvalidAmountError on a negative opening or counted balance.
    - ShiftAlreadyClosedError when closing a closed shift.
    - InvalidStateError when closed_at precedes opened_at, or when a
      Z-report is requested for an open shift without ``as_of``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

from pos_engines.ledger import CashMovement, LedgerAggregator
from pos_engines.tracer import traced_engine
from pos_kernel.domain.records import (
    CashShift,
    LedgerCategory,
    LedgerEntry,
    ShiftStatus,
    VarianceStatus,
    is_credit_method,
)
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    InvalidAmountError,
    InvalidStateError,
    ShiftAlreadyClosedError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.shift")


@dataclass(frozen=True)
class ShiftReconciliation:
    """Result of closing a shift: the frozen shift plus the cash breakdown."""

    shift: CashShift
    movement: CashMovement
    expected_balance: Money
    actual_balance: Money
    variance: Money
    variance_status: VarianceStatus


@dataclass(frozen=True)
class ZReport:
    """
    End-of-shift summary.

    ``actual_cash``, ``variance`` and ``variance_status`` are None while the
    shift is still open.  ``total_sales`` counts every non-credit sale in
    the window; credit sales are reported separately.
    """

    shift_id: str
    user_id: str
    shift_start: datetime
    shift_end: datetime
    opening_balance: Money
    cash_sales: Money
    cash_drops: Money
    cash_adds: Money
    expected_cash: Money
    card_sales: Money
    mobile_sales: Money
    other_sales: Money
    credit_sales: Money
    total_sales: Money
    actual_cash: Money | None = None
    variance: Money | None = None
    variance_status: VarianceStatus | None = None
    sales_by_method: dict[str, Money] = field(default_factory=dict)


def _method_bucket(method: str) -> str:
    name = method.strip().lower()
    if name == "cash":
        return "cash"
    if is_credit_method(name):
        return "credit"
    if "card" in name:
        return "card"
    if "mobile" in name:
        return "mobile"
    return "other"


class ShiftReconciler:
    """
    Shift state transitions and cash reconciliation.

    Contract:
        Pure.  Returns new CashShift records; never mutates its inputs.
    Non-goals:
        - Does not enforce one open shift per cashier (needs storage; see
          the shift service).
    """

    def __init__(self, aggregator: LedgerAggregator | None = None):
        self._aggregator = aggregator or LedgerAggregator()

    def open_shift(
        self,
        shift_id: str,
        tenant_id: str,
        user_id: str,
        opening_balance: Money,
        opened_at: datetime,
    ) -> CashShift:
        if opening_balance.is_negative:
            raise InvalidAmountError(opening_balance.amount, "opening balance must be >= 0")

        shift = CashShift(
            shift_id=shift_id,
            tenant_id=tenant_id,
            user_id=user_id,
            opening_balance=opening_balance,
            opened_at=opened_at,
            status=ShiftStatus.OPEN,
        )
        logger.info("shift_opened", extra={
            "shift_id": shift_id,
            "user_id": user_id,
            "opening_balance": opening_balance,
        })
        return shift

    def belongs_to_shift(self, shift: CashShift, entry: LedgerEntry) -> bool:
        """Whether ``entry`` moved money through this shift's drawer."""
        if entry.tenant_id != shift.tenant_id:
            return False
        if entry.actor_id is not None and entry.actor_id != shift.user_id:
            return False
        if entry.category is LedgerCategory.TRANSFER:
            return entry.reference_id == shift.shift_id
        return True

    def cash_movement(
        self,
        shift: CashShift,
        entries: Iterable[LedgerEntry],
        as_of: datetime,
    ) -> CashMovement:
        """Cash movement of the shift's drawer over ``[opened_at, as_of)``."""
        return self._aggregator.cash_movement(
            [e for e in entries if self.belongs_to_shift(shift, e)],
            window_start=shift.opened_at,
            window_end=as_of,
            currency=shift.currency,
        )

    def expected_balance(self, shift: CashShift, cash_movement: CashMovement) -> Money:
        """Opening float plus net cash movement."""
        return shift.opening_balance + cash_movement.net

    @traced_engine(
        "shift_close", "1.0",
        fingerprint_fields=("shift", "actual_balance", "closed_at"),
    )
    def close_shift(
        self,
        shift: CashShift,
        actual_balance: Money,
        entries: Iterable[LedgerEntry],
        closed_at: datetime,
        notes: str | None = None,
    ) -> ShiftReconciliation:
        """
        Close an open shift against the counted drawer.

        Returns:
            ShiftReconciliation whose ``shift`` is the CLOSED record.
        """
        if shift.status is ShiftStatus.CLOSED:
            raise ShiftAlreadyClosedError(shift.shift_id)
        if actual_balance.is_negative:
            raise InvalidAmountError(actual_balance.amount, "counted balance must be >= 0")
        if closed_at < shift.opened_at:
            raise InvalidStateError(
                f"Shift {shift.shift_id} cannot close at {closed_at.isoformat()} "
                f"before it opened at {shift.opened_at.isoformat()}"
            )

        movement = self.cash_movement(shift, entries, closed_at)
        expected = self.expected_balance(shift, movement)
        variance = actual_balance - expected
        status = VarianceStatus.from_variance(variance)

        closed = replace(
            shift,
            status=ShiftStatus.CLOSED,
            closing_balance=actual_balance,
            expected_balance=expected,
            variance=variance,
            closed_at=closed_at,
            notes=notes,
        )

        log = logger.info if status is VarianceStatus.BALANCED else logger.warning
        log("shift_closed", extra={
            "shift_id": shift.shift_id,
            "expected_balance": expected,
            "actual_balance": actual_balance,
            "variance": variance,
            "variance_status": status.value,
        })

        return ShiftReconciliation(
            shift=closed,
            movement=movement,
            expected_balance=expected,
            actual_balance=actual_balance,
            variance=variance,
            variance_status=status,
        )

    @traced_engine("shift_z_report", "1.0", fingerprint_fields=("shift", "as_of"))
    def z_report(
        self,
        shift: CashShift,
        entries: Iterable[LedgerEntry],
        as_of: datetime | None = None,
    ) -> ZReport:
        """
        Summarize a shift.  Closed shifts report up to ``closed_at`` and
        their frozen figures; open shifts need ``as_of``.
        """
        if shift.status is ShiftStatus.CLOSED and shift.closed_at is not None:
            end = shift.closed_at
        elif as_of is None:
            raise InvalidStateError(
                f"Z-report for open shift {shift.shift_id} needs an as_of time"
            )
        else:
            end = as_of

        movement = self.cash_movement(shift, entries, end)
        zero = Money.zero(shift.currency)
        buckets = {"cash": zero, "card": zero, "mobile": zero, "other": zero, "credit": zero}
        for method, amount in movement.sales_by_method.items():
            key = _method_bucket(method)
            buckets[key] = buckets[key] + amount

        non_credit = buckets["cash"] + buckets["card"] + buckets["mobile"] + buckets["other"]

        if shift.status is ShiftStatus.CLOSED:
            expected = shift.expected_balance
            if expected is None:
                expected = self.expected_balance(shift, movement)
            actual = shift.closing_balance
            variance = shift.variance
        else:
            expected = self.expected_balance(shift, movement)
            actual = variance = None

        return ZReport(
            shift_id=shift.shift_id,
            user_id=shift.user_id,
            shift_start=shift.opened_at,
            shift_end=end,
            opening_balance=shift.opening_balance,
            cash_sales=movement.cash_sales,
            cash_drops=movement.cash_drops,
            cash_adds=movement.cash_adds,
            expected_cash=expected,
            card_sales=buckets["card"],
            mobile_sales=buckets["mobile"],
            other_sales=buckets["other"],
            credit_sales=buckets["credit"],
            total_sales=non_credit,
            actual_cash=actual,
            variance=variance,
            variance_status=(
                VarianceStatus.from_variance(variance) if variance is not None else None
            ),
            sales_by_method=dict(movement.sales_by_method),
        )
