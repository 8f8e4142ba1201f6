"""
Module: pos_engines.matching
Responsibility:
    Decide which stored sales belong to a customer, so their unpaid credit
    sales can be handed to the FIFO allocator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel/domain and pos_kernel logging/exceptions.

Matching rules, strongest first:
    1. REFERENCE -- one of the entity's ledger entries names the sale id
       in ``reference_id``.
    2. CUSTOMER  -- the sale's own ``customer_id`` is the entity.
    3. FUZZY     -- for older records that carry neither link: one of the
       entity's SALE/PURCHASE entries without a reference has an amount
       within ``tolerance.amount`` (inclusive) of the sale total and a
       timestamp strictly within ``tolerance.window`` of the sale's
       completion time.  Each entry claims at most one sale that no other
       rule (or earlier entry) has claimed.

Fuzzy matches are a heuristic.  Two sales of the same amount rung up a
minute apart are indistinguishable; under MatchPolicy.FIRST_MATCH the first
one in input order wins and the ambiguity is reported, under
MatchPolicy.STRICT it raises AmbiguousMatchError.

Failure modes:
    - AmbiguousMatchError (STRICT only).
    - CurrencyMismatchError when an entry and a sale are in different
      currencies.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum

from pos_engines.tracer import traced_engine
from pos_kernel.domain.records import LedgerCategory, LedgerEntry, SaleRecord
from pos_kernel.exceptions import AmbiguousMatchError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

_FUZZY_CATEGORIES = frozenset({LedgerCategory.SALE, LedgerCategory.PURCHASE})


class MatchReason(str, Enum):
    REFERENCE = "reference"
    CUSTOMER = "customer"
    FUZZY = "fuzzy"


class MatchPolicy(str, Enum):
    """What to do when a ledger entry fuzzy-matches several sales."""

    FIRST_MATCH = "first_match"
    STRICT = "strict"


@dataclass(frozen=True)
class MatchTolerance:
    """
    Fuzzy-match thresholds.

    ``amount`` is an inclusive bound on |entry - sale total|; ``window`` an
    exclusive bound on |entry time - sale completion time|.
    """

    amount: Decimal = Decimal("0.05")
    window: timedelta = timedelta(minutes=5)

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))
        if self.amount < Decimal("0"):
            raise ValueError("Amount tolerance cannot be negative")
        if self.window < timedelta(0):
            raise ValueError("Time window cannot be negative")

    @classmethod
    def of(cls, amount: Decimal | str, window_seconds: int) -> MatchTolerance:
        return cls(amount=Decimal(str(amount)), window=timedelta(seconds=window_seconds))


@dataclass(frozen=True)
class SaleMatch:
    """One sale attributed to the entity and why."""

    sale: SaleRecord
    reason: MatchReason
    entry_id: str | None = None
    candidate_count: int = 1


@dataclass(frozen=True)
class AmbiguousMatch:
    """A ledger entry that fuzzy-matched more than one sale."""

    entry_id: str
    candidate_ids: tuple[str, ...]
    chosen_id: str


@dataclass(frozen=True)
class MatchReport:
    """All sales attributed to ``entity_id``, in input order."""

    entity_id: str
    matches: tuple[SaleMatch, ...]
    ambiguous: tuple[AmbiguousMatch, ...] = ()

    @property
    def sales(self) -> tuple[SaleRecord, ...]:
        return tuple(m.sale for m in self.matches)

    def by_reason(self, reason: MatchReason) -> tuple[SaleMatch, ...]:
        return tuple(m for m in self.matches if m.reason is reason)


class ObligationMatcher:
    """
    Attribute sale records to a customer or supplier.

    Contract:
        Pure and deterministic for a given input order.  Neither the sales
        nor the entries are mutated.
    Non-goals:
        - Does not compute balances or paid amounts.
    """

    def __init__(
        self,
        tolerance: MatchTolerance | None = None,
        policy: MatchPolicy = MatchPolicy.FIRST_MATCH,
    ):
        self.tolerance = tolerance or MatchTolerance()
        self.policy = MatchPolicy(policy)

    def match(
        self,
        sales: Sequence[SaleRecord],
        ledger_entries: Sequence[LedgerEntry],
        entity_id: str,
    ) -> list[SaleRecord]:
        """Sales belonging to ``entity_id``, in input order."""
        return list(self.match_report(sales, ledger_entries, entity_id).sales)

    @traced_engine("obligation_matching", "1.0", fingerprint_fields=("entity_id",))
    def match_report(
        self,
        sales: Sequence[SaleRecord],
        ledger_entries: Sequence[LedgerEntry],
        entity_id: str,
    ) -> MatchReport:
        """Like ``match`` but with the reason for every attribution."""
        entity_entries = [e for e in ledger_entries if e.entity_id == entity_id]

        referencing: dict[str, str] = {}
        for entry in entity_entries:
            if entry.reference_id and entry.reference_id not in referencing:
                referencing[entry.reference_id] = entry.entry_id

        claimed: dict[int, SaleMatch] = {}
        for index, sale in enumerate(sales):
            if sale.sale_id in referencing:
                claimed[index] = SaleMatch(
                    sale=sale,
                    reason=MatchReason.REFERENCE,
                    entry_id=referencing[sale.sale_id],
                )
            elif sale.customer_id is not None and sale.customer_id == entity_id:
                claimed[index] = SaleMatch(sale=sale, reason=MatchReason.CUSTOMER)

        ambiguous: list[AmbiguousMatch] = []
        for entry in entity_entries:
            if entry.reference_id or entry.category not in _FUZZY_CATEGORIES:
                continue

            candidates = [
                index
                for index, sale in enumerate(sales)
                if index not in claimed and self._is_fuzzy_match(entry, sale)
            ]
            if not candidates:
                continue

            if len(candidates) > 1:
                candidate_ids = [sales[i].sale_id for i in candidates]
                if self.policy is MatchPolicy.STRICT:
                    logger.warning("fuzzy_match_ambiguous_rejected", extra={
                        "entity_id": entity_id,
                        "entry_id": entry.entry_id,
                        "candidate_ids": candidate_ids,
                    })
                    raise AmbiguousMatchError(entry.entry_id, candidate_ids)
                logger.warning("fuzzy_match_ambiguous", extra={
                    "entity_id": entity_id,
                    "entry_id": entry.entry_id,
                    "candidate_ids": candidate_ids,
                    "chosen_id": candidate_ids[0],
                })
                ambiguous.append(
                    AmbiguousMatch(
                        entry_id=entry.entry_id,
                        candidate_ids=tuple(candidate_ids),
                        chosen_id=candidate_ids[0],
                    )
                )

            chosen = candidates[0]
            claimed[chosen] = SaleMatch(
                sale=sales[chosen],
                reason=MatchReason.FUZZY,
                entry_id=entry.entry_id,
                candidate_count=len(candidates),
            )

        matches = tuple(claimed[i] for i in sorted(claimed))
        logger.info("obligation_matching_completed", extra={
            "entity_id": entity_id,
            "sales_considered": len(sales),
            "matched": len(matches),
            "fuzzy": sum(1 for m in matches if m.reason is MatchReason.FUZZY),
            "ambiguous": len(ambiguous),
        })
        return MatchReport(entity_id=entity_id, matches=matches, ambiguous=tuple(ambiguous))

    def _is_fuzzy_match(self, entry: LedgerEntry, sale: SaleRecord) -> bool:
        amount_gap = abs(entry.amount - sale.total).amount
        time_gap = abs(entry.timestamp - sale.completed_at)
        return amount_gap <= self.tolerance.amount and time_gap < self.tolerance.window
