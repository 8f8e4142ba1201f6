"""
Module: pos_engines.allocation
Responsibility:
    Distribute an incoming payment across a customer's unpaid credit sales
    (or a supplier's unpaid purchase orders) oldest-first, and split an
    outstanding balance back onto the obligations that explain it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel/domain and pos_kernel logging/exceptions.

Invariants enforced:
    - Conservation: sum(applied) + remainder == payment, asserted on every
      call.  A positive remainder is returned, never dropped.
    - FIFO: obligations are visited by (created_at, obligation_id)
      ascending; a later obligation receives money only once every earlier
      one is fully paid.
    - Only credit obligations with a positive due participate.
    - Cap: no obligation is paid beyond its total.

Failure modes:
    - InvalidAmountError on a negative payment.
    - CurrencyMismatchError when an obligation is in another currency.
    - UnappliedPaymentError when ``require_full_application`` is set and
      money is left over.

Usage:
    from pos_engines.allocation import FifoAllocator
    from pos_kernel.domain.values import Money

    result = FifoAllocator().allocate(unpaid, Money.of("650.00", "BDT"))
    for line in result.lines:
        persist(line.obligation_id, line.new_amount_paid)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass

from pos_engines.tracer import traced_engine
from pos_kernel.domain.payment_status import PaymentStatus, classify_payment_status
from pos_kernel.domain.records import Obligation
from pos_kernel.domain.values import Money, max_money, min_money
from pos_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    UnappliedPaymentError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class AllocationLine:
    """
    Outcome of applying part of a payment to one obligation.

    Guarantees:
        - ``new_amount_paid == previous_amount_paid + amount_applied``
        - ``new_amount_paid <= total``
    """

    obligation_id: str
    amount_applied: Money
    previous_amount_paid: Money
    new_amount_paid: Money
    total: Money
    is_fully_paid: bool

    @property
    def remaining_due(self) -> Money:
        return self.total - self.new_amount_paid

    @property
    def status(self) -> PaymentStatus:
        return classify_payment_status(self.new_amount_paid, self.total)


@dataclass(frozen=True)
class AllocationResult:
    """
    A payment distributed over obligations.

    Guarantees:
        - ``total_applied + remainder == payment``
        - ``remainder >= 0``
        - Lines are in the order the money was applied.
    """

    payment: Money
    lines: tuple[AllocationLine, ...]
    remainder: Money

    @property
    def total_applied(self) -> Money:
        total = Money.zero(self.payment.currency)
        for line in self.lines:
            total = total + line.amount_applied
        return total

    @property
    def is_fully_applied(self) -> bool:
        return self.remainder.is_zero

    @property
    def new_amounts_paid(self) -> dict[str, Money]:
        """obligation_id -> cumulative paid amount to persist."""
        return {line.obligation_id: line.new_amount_paid for line in self.lines}

    def apply_to(self, obligations: Iterable[Obligation]) -> list[Obligation]:
        """Copies of ``obligations`` with this result's paid amounts applied."""
        updates = self.new_amounts_paid
        return [
            ob.with_amount_paid(updates[ob.obligation_id])
            if ob.obligation_id in updates
            else ob
            for ob in obligations
        ]


@dataclass(frozen=True)
class ObligationSplit:
    """Paid/due view of one credit obligation derived from a balance."""

    obligation_id: str
    total: Money
    paid: Money
    due: Money
    status: PaymentStatus


@dataclass(frozen=True)
class BalanceSplit:
    """
    An outstanding balance attributed to individual credit obligations.

    ``unattributed_balance`` is whatever part of the balance the obligations
    cannot explain: positive when the ledger says more is owed than the
    obligations total, negative when the entity has paid more than it was
    ever charged.  Zero whenever ``0 <= balance <= sum(totals)``.
    """

    outstanding_balance: Money
    should_be_paid: Money
    splits: tuple[ObligationSplit, ...]
    unattributed_balance: Money

    @property
    def total_due(self) -> Money:
        total = Money.zero(self.outstanding_balance.currency)
        for split in self.splits:
            total = total + split.due
        return total

    def by_id(self) -> dict[str, ObligationSplit]:
        return {s.obligation_id: s for s in self.splits}


def fifo_order(obligations: Iterable[Obligation]) -> list[Obligation]:
    """Oldest first; ties broken by id so the order is total."""
    return sorted(obligations, key=lambda ob: (ob.created_at, ob.obligation_id))


class FifoAllocator:
    """
    Oldest-first payment allocation.

    Contract:
        Pure and deterministic.  Inputs are never mutated; callers persist
        ``AllocationLine.new_amount_paid`` themselves.
    Non-goals:
        - No pro-rata or user-chosen ordering.
        - Does not create credit notes for a remainder; the caller decides.
    """

    @traced_engine("fifo_allocation", "1.0", fingerprint_fields=("obligations", "payment"))
    def allocate(
        self,
        obligations: Sequence[Obligation],
        payment: Money,
        *,
        require_full_application: bool = False,
    ) -> AllocationResult:
        """
        Apply ``payment`` to credit obligations with a positive due, oldest
        first.

        Args:
            obligations: Candidate obligations (any order, any status).
            payment: Amount received; must be >= 0.
            require_full_application: Raise instead of returning a positive
                remainder.

        Returns:
            AllocationResult with one line per obligation that received money.
        """
        if payment.is_negative:
            raise InvalidAmountError(payment.amount, "payment must be >= 0")
        self._check_currencies(obligations, payment)

        eligible = fifo_order(
            ob for ob in obligations if ob.is_credit and ob.due.is_positive
        )

        logger.info("allocation_started", extra={
            "payment": payment,
            "currency": payment.currency.code,
            "candidate_count": len(obligations),
            "eligible_count": len(eligible),
        })

        lines: list[AllocationLine] = []
        applied_total = Money.zero(payment.currency)
        walk = self._walk(eligible, payment, paid_of=lambda ob: ob.amount_paid)
        for ob, previous, applied in walk:
            new_paid = previous + applied
            lines.append(
                AllocationLine(
                    obligation_id=ob.obligation_id,
                    amount_applied=applied,
                    previous_amount_paid=previous,
                    new_amount_paid=new_paid,
                    total=ob.total,
                    is_fully_paid=new_paid >= ob.total,
                )
            )
            applied_total = applied_total + applied

        remainder = payment - applied_total
        assert applied_total + remainder == payment and not remainder.is_negative, (
            f"allocation conservation violated: applied={applied_total} "
            f"remainder={remainder} payment={payment}"
        )

        logger.info("allocation_completed", extra={
            "payment": payment,
            "total_applied": applied_total,
            "remainder": remainder,
            "lines": len(lines),
            "fully_paid": sum(1 for line in lines if line.is_fully_paid),
        })

        if require_full_application and remainder.is_positive:
            logger.warning("allocation_unapplied_remainder", extra={
                "payment": payment,
                "remainder": remainder,
            })
            raise UnappliedPaymentError(
                payment=str(payment.amount),
                remainder=str(remainder.amount),
                currency=payment.currency.code,
            )

        return AllocationResult(payment=payment, lines=tuple(lines), remainder=remainder)

    @traced_engine(
        "fifo_balance_split", "1.0",
        fingerprint_fields=("obligations", "outstanding_balance"),
    )
    def split_from_balance(
        self,
        obligations: Sequence[Obligation],
        outstanding_balance: Money,
    ) -> BalanceSplit:
        """
        Attribute an entity's outstanding balance to its credit obligations.

        Stored ``amount_paid`` values are ignored: everything the entity has
        paid (``sum(totals) - balance``) is walked over the credit
        obligations oldest-first, so the newest obligations carry the due.
        """
        self._check_currencies(obligations, outstanding_balance)
        cur = outstanding_balance.currency
        zero = Money.zero(cur)

        credit = fifo_order(ob for ob in obligations if ob.is_credit)
        grand_total = zero
        for ob in credit:
            grand_total = grand_total + ob.total

        should_be_paid = max_money(grand_total - outstanding_balance, zero)

        paid_by_id: dict[str, Money] = {}
        for ob, _previous, applied in self._walk(credit, should_be_paid, paid_of=lambda _ob: zero):
            paid_by_id[ob.obligation_id] = applied

        splits: list[ObligationSplit] = []
        total_due = zero
        for ob in credit:
            paid = paid_by_id.get(ob.obligation_id, zero)
            due = ob.total - paid
            total_due = total_due + due
            splits.append(
                ObligationSplit(
                    obligation_id=ob.obligation_id,
                    total=ob.total,
                    paid=paid,
                    due=due,
                    status=classify_payment_status(paid, ob.total),
                )
            )

        unattributed = outstanding_balance - total_due
        if not unattributed.is_zero:
            logger.warning("balance_split_unattributed", extra={
                "outstanding_balance": outstanding_balance,
                "obligations_total": grand_total,
                "unattributed": unattributed,
            })

        return BalanceSplit(
            outstanding_balance=outstanding_balance,
            should_be_paid=should_be_paid,
            splits=tuple(splits),
            unattributed_balance=unattributed,
        )

    @staticmethod
    def _walk(
        ordered: Sequence[Obligation],
        amount: Money,
        paid_of: Callable[[Obligation], Money],
    ) -> Iterator[tuple[Obligation, Money, Money]]:
        """Yield (obligation, previously_paid, applied) until ``amount`` runs out."""
        remaining = amount
        for ob in ordered:
            if not remaining.is_positive:
                break
            previous = paid_of(ob)
            due = ob.total - previous
            if not due.is_positive:
                continue
            applied = min_money(remaining, due)
            remaining = remaining - applied
            yield ob, previous, applied

    @staticmethod
    def _check_currencies(obligations: Iterable[Obligation], amount: Money) -> None:
        for ob in obligations:
            if ob.currency != amount.currency:
                raise CurrencyMismatchError(
                    expected=amount.currency.code, received=ob.currency.code
                )
