"""
CashShiftService -- persisted cash-drawer shifts.

Responsibility:
    Opens and closes shifts, records cash drops and cash adds against the
    drawer, and produces Z-reports and shift history.  Reconciliation
    arithmetic lives in ``pos_engines.shift.ShiftReconciler``; this service
    loads the shift and the tenant's Cash entries for its window, calls the
    engine, and persists the closed shift.  Drops and adds are stamped with
    the shift id and its cashier so a concurrent shift of another cashier
    never reconciles against them.

Invariants enforced:
    - At most one open shift per (tenant, user): ``open_shift`` checks for
      an existing open shift inside the same transaction it creates the new
      one in.
    - A closed shift is frozen; the ORM listener rejects later writes and
      the versioned row makes two concurrent closes race to one winner.
    - Drops and adds are only accepted while the shift is open.

Failure modes:
    - ShiftAlreadyOpenError, ShiftAlreadyClosedError.
    - RecordNotFoundError for an unknown shift id (or another tenant's).
    - OptimisticLockError when a concurrent close wins.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pos_engines.shift import ShiftReconciler, ShiftReconciliation, ZReport
from pos_kernel.db.base import new_id
from pos_kernel.domain.records import (
    CashShift,
    Direction,
    LedgerCategory,
    LedgerEntry,
    ShiftStatus,
)
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    OptimisticLockError,
    RecordNotFoundError,
    ShiftAlreadyClosedError,
    ShiftAlreadyOpenError,
)
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.models.cash_shift import CashShiftModel
from pos_kernel.models.ledger_entry import LedgerEntryModel
from pos_services.base import BaseService

logger = get_logger("services.shift")

CASH_METHOD = "Cash"


class CashShiftService(BaseService):
    """Shift lifecycle backed by the ``cash_shifts`` table."""

    def __init__(self, session_factory, clock=None, config=None):
        super().__init__(session_factory, clock, config)
        self._reconciler = ShiftReconciler()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open_shift(
        self,
        tenant_id: str,
        user_id: str,
        opening_balance: Money,
        *,
        shift_id: str | None = None,
    ) -> CashShift:
        self._check_currency(opening_balance)
        with LogContext.bind(tenant_id=tenant_id, actor_id=user_id):
            with self._transaction() as session:
                existing = self._open_row(session, tenant_id, user_id)
                if existing is not None:
                    raise ShiftAlreadyOpenError(tenant_id, user_id, existing.id)
                shift = self._reconciler.open_shift(
                    shift_id=shift_id or new_id(),
                    tenant_id=tenant_id,
                    user_id=user_id,
                    opening_balance=opening_balance,
                    opened_at=self._clock.now(),
                )
                session.add(CashShiftModel.from_dto(shift))
        return shift

    def cash_drop(
        self,
        tenant_id: str,
        shift_id: str,
        amount: Money,
        description: str | None = None,
    ) -> LedgerEntry:
        """Cash taken out of the drawer during the shift."""
        return self._drawer_movement(tenant_id, shift_id, amount, Direction.OUT, description)

    def cash_add(
        self,
        tenant_id: str,
        shift_id: str,
        amount: Money,
        description: str | None = None,
    ) -> LedgerEntry:
        """Cash put into the drawer during the shift (change float top-up)."""
        return self._drawer_movement(tenant_id, shift_id, amount, Direction.IN, description)

    def close_shift(
        self,
        tenant_id: str,
        shift_id: str,
        actual_balance: Money,
        notes: str | None = None,
    ) -> ShiftReconciliation:
        """Close against the counted drawer and persist the frozen figures."""
        self._check_currency(actual_balance)
        with LogContext.bind(tenant_id=tenant_id, shift_id=shift_id):
            try:
                with self._transaction() as session:
                    row = self._get_row(session, tenant_id, shift_id)
                    shift = row.to_dto()
                    if not shift.is_open:
                        raise ShiftAlreadyClosedError(shift_id)
                    closed_at = self._clock.now()
                    entries = self._cash_entries(session, tenant_id, shift, closed_at)
                    reconciliation = self._reconciler.close_shift(
                        shift, actual_balance, entries, closed_at, notes
                    )
                    row.apply_dto(reconciliation.shift)
                    session.flush()
            except StaleDataError as e:
                logger.warning("shift_close_conflict", extra={"shift_id": shift_id})
                raise OptimisticLockError("CashShift", shift_id) from e
        return reconciliation

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_shift(self, tenant_id: str, shift_id: str) -> CashShift:
        with self._transaction() as session:
            return self._get_row(session, tenant_id, shift_id).to_dto()

    def active_shift(self, tenant_id: str, user_id: str) -> CashShift | None:
        """The user's open shift, if any."""
        with self._transaction() as session:
            row = self._open_row(session, tenant_id, user_id)
            return row.to_dto() if row is not None else None

    def history(
        self,
        tenant_id: str,
        user_id: str | None = None,
        limit: int = 50,
    ) -> list[CashShift]:
        """Most recent shifts first."""
        with self._transaction() as session:
            stmt = select(CashShiftModel).where(CashShiftModel.tenant_id == tenant_id)
            if user_id is not None:
                stmt = stmt.where(CashShiftModel.user_id == user_id)
            stmt = stmt.order_by(
                CashShiftModel.opened_at.desc(), CashShiftModel.id.desc()
            ).limit(limit)
            return [row.to_dto() for row in session.scalars(stmt)]

    def z_report(self, tenant_id: str, shift_id: str) -> ZReport:
        """Z-report of a closed shift, or of an open one up to now."""
        with self._transaction() as session:
            shift = self._get_row(session, tenant_id, shift_id).to_dto()
            as_of = shift.closed_at if shift.closed_at is not None else self._clock.now()
            entries = self._shift_entries(session, tenant_id, shift, as_of)
        return self._reconciler.z_report(shift, entries, as_of)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _drawer_movement(
        self,
        tenant_id: str,
        shift_id: str,
        amount: Money,
        direction: Direction,
        description: str | None,
    ) -> LedgerEntry:
        if not amount.is_positive:
            raise InvalidAmountError(amount.amount, "drawer movement must be > 0")
        self._check_currency(amount)
        with LogContext.bind(tenant_id=tenant_id, shift_id=shift_id):
            with self._transaction() as session:
                shift = self._get_row(session, tenant_id, shift_id).to_dto()
                if not shift.is_open:
                    raise ShiftAlreadyClosedError(shift_id)
                entry = LedgerEntry(
                    entry_id=new_id(),
                    tenant_id=tenant_id,
                    direction=direction,
                    category=LedgerCategory.TRANSFER,
                    amount=amount,
                    method=CASH_METHOD,
                    timestamp=self._clock.now(),
                    reference_id=shift_id,
                    description=description,
                    actor_id=shift.user_id,
                )
                session.add(LedgerEntryModel.from_dto(entry))
            logger.info(
                "cash_drop_recorded" if direction is Direction.OUT else "cash_add_recorded",
                extra={"entry_id": entry.entry_id, "amount": amount},
            )
        return entry

    def _get_row(self, session: Session, tenant_id: str, shift_id: str) -> CashShiftModel:
        row = session.get(CashShiftModel, shift_id)
        if row is None or row.tenant_id != tenant_id:
            raise RecordNotFoundError("CashShift", shift_id)
        return row

    def _open_row(self, session: Session, tenant_id: str, user_id: str) -> CashShiftModel | None:
        stmt = select(CashShiftModel).where(
            CashShiftModel.tenant_id == tenant_id,
            CashShiftModel.user_id == user_id,
            CashShiftModel.status == ShiftStatus.OPEN.value,
        )
        return session.scalars(stmt).first()

    def _shift_entries(self, session, tenant_id, shift: CashShift, until) -> list[LedgerEntry]:
        stmt = select(LedgerEntryModel).where(
            LedgerEntryModel.tenant_id == tenant_id,
            LedgerEntryModel.timestamp >= shift.opened_at,
            LedgerEntryModel.timestamp < until,
        ).order_by(LedgerEntryModel.timestamp, LedgerEntryModel.id)
        return [row.to_dto() for row in session.scalars(stmt)]

    def _cash_entries(self, session, tenant_id, shift: CashShift, until) -> list[LedgerEntry]:
        return [e for e in self._shift_entries(session, tenant_id, shift, until) if e.is_cash]

    def _check_currency(self, amount: Money) -> None:
        if amount.currency != self._currency:
            raise CurrencyMismatchError(
                expected=self._currency.code, received=amount.currency.code
            )
