"""
CreditLedgerService -- customer and supplier credit on top of the ledger.

Responsibility:
    Records ledger entries and obligations (credit sales, purchase
    orders), receives payments by running the FIFO allocator and persisting
    its result, and answers balance, statement, matching and aging queries
    for one tenant.

Architecture position:
    Services -- imperative shell.  Loads rows, calls the pure engines in
    ``pos_engines``, writes the results back.

Invariants enforced:
    - At most one writer per obligation: ``receive_payment`` reads the
      entity's obligations, allocates, and writes inside one transaction.
      Obligation rows are versioned; a concurrent writer makes the UPDATE
      match no rows (``StaleDataError``), the transaction rolls back and
      the whole read-allocate-write cycle runs again, up to
      ``allocation_max_retries`` retries.
    - The payment ledger entry and the obligation updates commit together
      or not at all.
    - Tenant is always an explicit argument; every query filters on it.

Failure modes:
    - OptimisticLockError once the retries are used up.
    - CurrencyMismatchError for money not in the configured currency.
    - InvalidAmountError for a non-positive payment.
    - InvalidObligationError for an obligation whose entity is missing.

Usage:
    service = CreditLedgerService(session_factory, clock)
    service.record_sale("t1", sale)
    receipt = service.receive_payment(
        "t1", "cust-1", Party.CUSTOMER, Money.of("650.00", "BDT"),
    )
    receipt.allocation.new_amounts_paid
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pos_engines.aging import AgeBucket, AgingCalculator, AgingReport, Counterparty
from pos_engines.allocation import AllocationResult, BalanceSplit, FifoAllocator
from pos_engines.ledger import EntityBalance, LedgerAggregator, OutstandingSummary
from pos_engines.matching import MatchPolicy, MatchReport, MatchTolerance, ObligationMatcher
from pos_kernel.db.base import new_id
from pos_kernel.domain.records import (
    Direction,
    LedgerEntry,
    Obligation,
    ObligationKind,
    Party,
    SaleRecord,
)
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidObligationError,
    OptimisticLockError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.models.ledger_entry import LedgerEntryModel
from pos_kernel.models.obligation import ObligationModel
from pos_services.base import BaseService

logger = get_logger("services.credit")

_OBLIGATION_KIND = {
    Party.CUSTOMER: ObligationKind.SALE,
    Party.SUPPLIER: ObligationKind.PURCHASE_ORDER,
}
_PARTY_OF_KIND = {kind: party for party, kind in _OBLIGATION_KIND.items()}

# Customers pay money in; the shop pays suppliers out.  Charges follow
# the same direction as the cash sale or purchase they stand in for.
_DIRECTION = {Party.CUSTOMER: Direction.IN, Party.SUPPLIER: Direction.OUT}


@dataclass(frozen=True)
class PaymentReceipt:
    """A persisted payment and how it was spread over obligations."""

    entry: LedgerEntry
    allocation: AllocationResult
    attempts: int

    @property
    def remainder(self) -> Money:
        return self.allocation.remainder


@dataclass(frozen=True)
class EntityStatement:
    """Balance of one customer or supplier, explained per obligation."""

    balance: EntityBalance
    obligations: tuple[Obligation, ...]
    split: BalanceSplit


class CreditLedgerService(BaseService):
    """
    Credit sales, purchase orders and the payments that settle them.

    Contract:
        Every public method is one transaction.  Returned values are
        domain records, never ORM rows.
    """

    def __init__(self, session_factory, clock=None, config=None):
        super().__init__(session_factory, clock, config)
        self._allocator = FifoAllocator()
        self._aggregator = LedgerAggregator()
        matching = self._config.matching
        self._matcher = ObligationMatcher(
            tolerance=MatchTolerance.of(matching.amount_tolerance, matching.time_window_seconds),
            policy=MatchPolicy(matching.policy),
        )
        self._aging = AgingCalculator(
            buckets=[
                AgeBucket(b.name, b.min_days, b.max_days) for b in self._config.aging_buckets
            ],
            allocator=self._allocator,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Append one ledger entry."""
        self._check_currency(entry.amount)
        with LogContext.bind(tenant_id=entry.tenant_id, entity_id=entry.entity_id):
            with self._transaction() as session:
                session.add(LedgerEntryModel.from_dto(entry))
            logger.info("ledger_entry_recorded", extra={
                "entry_id": entry.entry_id,
                "category": entry.category.value,
                "direction": entry.direction.value,
                "amount": entry.amount,
                "method": entry.method,
            })
        return entry

    def record_obligation(
        self,
        tenant_id: str,
        obligation: Obligation,
        *,
        method: str | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> Obligation:
        """
        Persist an obligation together with the ledger entry that charges
        it (SALE for a customer, PURCHASE for a supplier).

        Credit obligations are charged with method ``Credit``; others with
        ``method`` (default ``Cash``).  The charge entry references the
        obligation id and carries ``actor_id``, the cashier whose drawer
        takes a cash sale.
        """
        self._check_currency(obligation.total)
        if obligation.is_credit and obligation.entity_id is None:
            raise InvalidObligationError(
                obligation.obligation_id, "a credit obligation needs an entity"
            )
        party = _PARTY_OF_KIND[obligation.kind]
        charge_method = "Credit" if obligation.is_credit else (method or "Cash")
        charge = LedgerEntry(
            entry_id=new_id(),
            tenant_id=tenant_id,
            direction=_DIRECTION[party],
            category=party.charge_category,
            amount=obligation.total,
            method=charge_method,
            timestamp=obligation.created_at,
            entity_id=obligation.entity_id,
            reference_id=obligation.obligation_id,
            description=description,
            actor_id=actor_id,
        )

        with LogContext.bind(tenant_id=tenant_id, entity_id=obligation.entity_id):
            with self._transaction() as session:
                session.add(ObligationModel.from_dto(obligation, tenant_id))
                session.add(LedgerEntryModel.from_dto(charge))
            logger.info("obligation_recorded", extra={
                "obligation_id": obligation.obligation_id,
                "kind": obligation.kind.value,
                "total": obligation.total,
                "is_credit": obligation.is_credit,
            })
        return obligation

    def record_sale(self, tenant_id: str, sale: SaleRecord) -> Obligation:
        """Persist a completed sale.  Non-credit sales are paid in full."""
        obligation = sale.to_obligation(None if sale.is_credit else sale.total)
        return self.record_obligation(
            tenant_id, obligation, method=sale.payment_method, actor_id=sale.cashier_id,
        )

    def receive_payment(
        self,
        tenant_id: str,
        entity_id: str,
        party: Party,
        amount: Money,
        *,
        method: str = "Cash",
        payment_id: str | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> PaymentReceipt:
        """
        Record a payment from a customer (or to a supplier) and apply it to
        their unpaid credit obligations oldest-first.

        A positive remainder is kept on the ledger as an advance and
        reported on the receipt.  ``actor_id`` is the cashier taking the
        payment; a cash payment then counts toward that cashier's drawer.

        Raises:
            InvalidAmountError: ``amount`` is zero or negative.  The
                allocator itself accepts zero and returns an empty
                allocation, but a zero payment is never written to the
                ledger.
            CurrencyMismatchError: ``amount`` is not in the shop currency.
            OptimisticLockError: concurrent writers outlasted the retries.
        """
        if not amount.is_positive:
            raise InvalidAmountError(amount.amount, "payment must be > 0")
        self._check_currency(amount)
        party = Party(party)
        payment_id = payment_id or new_id()
        max_retries = self._config.allocation_max_retries

        with LogContext.bind(tenant_id=tenant_id, entity_id=entity_id):
            attempt = 0
            while True:
                attempt += 1
                try:
                    entry, allocation = self._apply_payment(
                        tenant_id, entity_id, party, amount, method, payment_id,
                        description, actor_id,
                    )
                except StaleDataError as e:
                    logger.warning("payment_allocation_conflict", extra={
                        "payment_id": payment_id,
                        "attempt": attempt,
                        "max_retries": max_retries,
                    })
                    if attempt > max_retries:
                        raise OptimisticLockError("Obligation", entity_id, attempt) from e
                    continue
                break

            if allocation.remainder.is_positive:
                logger.warning("payment_unapplied_remainder", extra={
                    "payment_id": payment_id,
                    "remainder": allocation.remainder,
                })
            logger.info("payment_received", extra={
                "payment_id": payment_id,
                "party": party.value,
                "amount": amount,
                "applied": allocation.total_applied,
                "obligations_touched": len(allocation.lines),
                "attempts": attempt,
            })
        return PaymentReceipt(entry=entry, allocation=allocation, attempts=attempt)

    def _apply_payment(
        self,
        tenant_id: str,
        entity_id: str,
        party: Party,
        amount: Money,
        method: str,
        payment_id: str,
        description: str | None,
        actor_id: str | None,
    ) -> tuple[LedgerEntry, AllocationResult]:
        with self._transaction() as session:
            rows = self._load_obligations(session, tenant_id, entity_id, party)
            allocation = self._allocator.allocate([row.to_dto() for row in rows], amount)

            by_id = {row.id: row for row in rows}
            for line in allocation.lines:
                by_id[line.obligation_id].amount_paid = line.new_amount_paid.amount

            entry = LedgerEntry(
                entry_id=payment_id,
                tenant_id=tenant_id,
                direction=_DIRECTION[party],
                category=party.payment_category,
                amount=amount,
                method=method,
                timestamp=self._clock.now(),
                entity_id=entity_id,
                description=description,
                actor_id=actor_id,
            )
            session.add(LedgerEntryModel.from_dto(entry))
            session.flush()
        return entry, allocation

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _load_obligations(
        self,
        session: Session,
        tenant_id: str,
        entity_id: str,
        party: Party,
    ) -> list[ObligationModel]:
        stmt = (
            select(ObligationModel)
            .where(
                ObligationModel.tenant_id == tenant_id,
                ObligationModel.entity_id == entity_id,
                ObligationModel.kind == _OBLIGATION_KIND[party].value,
            )
            .order_by(ObligationModel.issued_at, ObligationModel.id)
        )
        return list(session.scalars(stmt))

    def _load_entries(
        self,
        session: Session,
        tenant_id: str,
        entity_id: str | None = None,
    ) -> list[LedgerEntry]:
        stmt = select(LedgerEntryModel).where(LedgerEntryModel.tenant_id == tenant_id)
        if entity_id is not None:
            stmt = stmt.where(LedgerEntryModel.entity_id == entity_id)
        stmt = stmt.order_by(LedgerEntryModel.timestamp, LedgerEntryModel.id)
        return [row.to_dto() for row in session.scalars(stmt)]

    def obligations(self, tenant_id: str, entity_id: str, party: Party) -> list[Obligation]:
        """The entity's obligations, oldest first."""
        with self._transaction() as session:
            rows = self._load_obligations(session, tenant_id, entity_id, Party(party))
            return [row.to_dto() for row in rows]

    def ledger(self, tenant_id: str, entity_id: str | None = None) -> list[LedgerEntry]:
        with self._transaction() as session:
            return self._load_entries(session, tenant_id, entity_id)

    def entity_balance(self, tenant_id: str, entity_id: str, party: Party) -> EntityBalance:
        entries = self.ledger(tenant_id, entity_id)
        return self._aggregator.entity_balance(entries, entity_id, Party(party), self._currency)

    def entity_statement(self, tenant_id: str, entity_id: str, party: Party) -> EntityStatement:
        """Ledger balance plus the per-obligation paid/due split behind it."""
        party = Party(party)
        with self._transaction() as session:
            entries = self._load_entries(session, tenant_id, entity_id)
            obligations = tuple(
                row.to_dto()
                for row in self._load_obligations(session, tenant_id, entity_id, party)
            )
        balance = self._aggregator.entity_balance(entries, entity_id, party, self._currency)
        split = self._allocator.split_from_balance(obligations, balance.balance)
        return EntityStatement(balance=balance, obligations=obligations, split=split)

    def outstanding(self, tenant_id: str, party: Party) -> OutstandingSummary:
        """Every customer (or supplier) balance of the tenant."""
        return self._aggregator.outstanding_by_entity(
            self.ledger(tenant_id), Party(party), self._currency
        )

    def match_sales(
        self,
        tenant_id: str,
        entity_id: str,
        sales: Sequence[SaleRecord],
    ) -> MatchReport:
        """Which of ``sales`` belong to ``entity_id``, and why."""
        return self._matcher.match_report(sales, self.ledger(tenant_id, entity_id), entity_id)

    def aging_report(
        self,
        tenant_id: str,
        party: Party,
        counterparties: Sequence[Counterparty],
        as_of_date: date | None = None,
    ) -> AgingReport:
        as_of = as_of_date or self._clock.now().date()
        return self._aging.generate_report(
            self.ledger(tenant_id), counterparties, Party(party), as_of, self._currency
        )

    def _check_currency(self, amount: Money) -> None:
        if amount.currency != self._currency:
            raise CurrencyMismatchError(
                expected=self._currency.code, received=amount.currency.code
            )
