"""
Module: pos_engines.aging
Responsibility:
    Receivable (customer) and payable (supplier) aging: apply each
    counterparty's payments FIFO to their credit charges and bucket what is
    still outstanding by age.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``as_of_date`` is always
    a parameter; the calculator never reads the clock.

Invariants enforced:
    - Payments are applied through FifoAllocator, so aging agrees with
      allocation.
    - For every row, sum of bucket amounts == total_due.
    - Rows only for counterparties with total_due > 0, largest first.

Failure modes:
    - ValueError when an age does not fall into any configured bucket, or
      the bucket set is malformed.
    - CurrencyMismatchError on mixed currencies.

Usage:
    from pos_engines.aging import AgingCalculator, Counterparty
    from pos_kernel.domain.records import Party

    report = AgingCalculator().generate_report(
        entries=ledger,
        counterparties=[Counterparty("cust-1", "Rahim Stores")],
        party=Party.CUSTOMER,
        as_of_date=date(2024, 3, 31),
        currency="BDT",
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from pos_engines.allocation import FifoAllocator
from pos_engines.tracer import traced_engine
from pos_kernel.domain.records import LedgerEntry, Obligation, ObligationKind, Party
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import CurrencyMismatchError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of ages in days.

    ``max_days`` of None means unbounded (e.g. 90+).
    """

    name: str
    min_days: int
    max_days: int | None

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


DEFAULT_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-30", 0, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


@dataclass(frozen=True)
class Counterparty:
    """A customer or supplier to report on."""

    entity_id: str
    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class AgedItem:
    """Unpaid portion of one credit charge, with its age."""

    entry_id: str
    entry_date: date
    outstanding: Money
    age_days: int
    bucket: AgeBucket


@dataclass(frozen=True)
class AgingRow:
    """One counterparty's outstanding amount split into age buckets."""

    counterparty: Counterparty
    total_due: Money
    by_bucket: dict[str, Money]
    items: tuple[AgedItem, ...] = ()


@dataclass(frozen=True)
class AgingReport:
    """Aging snapshot for one side of the ledger."""

    as_of_date: date
    party: Party
    currency: Currency
    buckets: tuple[AgeBucket, ...]
    rows: tuple[AgingRow, ...] = field(default=())

    def total_due(self) -> Money:
        total = Money.zero(self.currency)
        for row in self.rows:
            total = total + row.total_due
        return total

    def total_by_bucket(self) -> dict[str, Money]:
        result = {b.name: Money.zero(self.currency) for b in self.buckets}
        for row in self.rows:
            for name, amount in row.by_bucket.items():
                result[name] = result[name] + amount
        return result


class AgingCalculator:
    """
    Calculate receivable / payable aging from the ledger.

    Contract:
        Pure functions; all data and dates are parameters.
    Non-goals:
        - Does not use due dates; age runs from the charge date.
    """

    def __init__(
        self,
        buckets: Sequence[AgeBucket] | None = None,
        allocator: FifoAllocator | None = None,
    ):
        self.buckets = tuple(buckets) if buckets is not None else DEFAULT_BUCKETS
        if not self.buckets:
            raise ValueError("At least one aging bucket is required")
        if self.buckets[0].min_days != 0 or self.buckets[-1].max_days is not None:
            raise ValueError("Aging buckets must start at day 0 and end unbounded")
        self._allocator = allocator or FifoAllocator()

    def calculate_age(self, entry_date: date, as_of_date: date) -> int:
        """Whole days from ``entry_date`` to ``as_of_date`` (negative if later)."""
        return (as_of_date - entry_date).days

    def classify(self, age_days: int) -> AgeBucket:
        """Bucket for an age; ages before day 0 fall into the first bucket."""
        if age_days < 0:
            return self.buckets[0]
        for bucket in self.buckets:
            if bucket.contains(age_days):
                return bucket
        logger.warning("age_classification_no_bucket", extra={
            "age_days": age_days,
            "bucket_count": len(self.buckets),
        })
        raise ValueError(f"Age {age_days} does not fit any bucket")

    @traced_engine(
        "aging", "1.0",
        fingerprint_fields=("party", "as_of_date", "currency"),
    )
    def generate_report(
        self,
        entries: Iterable[LedgerEntry],
        counterparties: Sequence[Counterparty],
        party: Party,
        as_of_date: date,
        currency: Currency | str,
    ) -> AgingReport:
        cur = currency if isinstance(currency, Currency) else Currency(currency)

        by_entity: dict[str, list[LedgerEntry]] = {}
        for entry in entries:
            if entry.entity_id is not None:
                by_entity.setdefault(entry.entity_id, []).append(entry)

        rows: list[AgingRow] = []
        for counterparty in counterparties:
            row = self._age_counterparty(
                counterparty,
                by_entity.get(counterparty.entity_id, []),
                party,
                as_of_date,
                cur,
            )
            if row.total_due.is_positive:
                rows.append(row)

        rows.sort(key=lambda r: (-r.total_due.amount, r.counterparty.entity_id))

        logger.info("aging_report_generated", extra={
            "party": party.value,
            "as_of_date": as_of_date.isoformat(),
            "counterparties": len(counterparties),
            "rows": len(rows),
        })
        return AgingReport(
            as_of_date=as_of_date,
            party=party,
            currency=cur,
            buckets=self.buckets,
            rows=tuple(rows),
        )

    def _age_counterparty(
        self,
        counterparty: Counterparty,
        entries: Sequence[LedgerEntry],
        party: Party,
        as_of_date: date,
        cur: Currency,
    ) -> AgingRow:
        zero = Money.zero(cur)
        charges: list[Obligation] = []
        paid = zero
        entry_dates: dict[str, date] = {}

        for entry in entries:
            if entry.amount.currency != cur:
                raise CurrencyMismatchError(
                    expected=cur.code, received=entry.amount.currency.code
                )
            if entry.category is party.charge_category and entry.is_credit:
                if not entry.amount.is_positive:
                    continue
                charges.append(
                    Obligation(
                        obligation_id=entry.entry_id,
                        total=entry.amount,
                        amount_paid=zero,
                        created_at=entry.timestamp,
                        entity_id=counterparty.entity_id,
                        kind=(
                            ObligationKind.SALE
                            if party is Party.CUSTOMER
                            else ObligationKind.PURCHASE_ORDER
                        ),
                    )
                )
                entry_dates[entry.entry_id] = entry.timestamp.date()
            elif entry.category is party.payment_category:
                paid = paid + entry.amount

        allocation = self._allocator.allocate(charges, paid)
        settled = allocation.new_amounts_paid

        by_bucket = {b.name: zero for b in self.buckets}
        items: list[AgedItem] = []
        total_due = zero
        for charge in charges:
            outstanding = charge.total - settled.get(charge.obligation_id, zero)
            if not outstanding.is_positive:
                continue
            entry_date = entry_dates[charge.obligation_id]
            age = self.calculate_age(entry_date, as_of_date)
            bucket = self.classify(age)
            by_bucket[bucket.name] = by_bucket[bucket.name] + outstanding
            total_due = total_due + outstanding
            items.append(
                AgedItem(
                    entry_id=charge.obligation_id,
                    entry_date=entry_date,
                    outstanding=outstanding,
                    age_days=age,
                    bucket=bucket,
                )
            )

        return AgingRow(
            counterparty=counterparty,
            total_due=total_due,
            by_bucket=by_bucket,
            items=tuple(items),
        )
