"""
Module: pos_kernel.models.cash_shift
Responsibility: ORM persistence for cash-drawer shifts.
Architecture position: Kernel > Models.

Invariants enforced:
    - Versioned: concurrent closes of one shift cannot both succeed.
    - A closed shift is frozen (listener in db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase
from pos_kernel.domain.records import CashShift, ShiftStatus
from pos_kernel.domain.values import Money


class CashShiftModel(TrackedBase):
    """One cashier's drawer session."""

    __tablename__ = "cash_shifts"

    __table_args__ = (
        Index("idx_shift_tenant_user_status", "tenant_id", "user_id", "status"),
        Index("idx_shift_tenant_opened", "tenant_id", "opened_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(nullable=False)
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ShiftStatus.OPEN.value
    )
    closing_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance: Mapped[Decimal | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def _money(self, value: Decimal | None) -> Money | None:
        if value is None:
            return None
        return Money.of(value, self.currency).round()

    def to_dto(self) -> CashShift:
        return CashShift(
            shift_id=self.id,
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            opening_balance=self._money(self.opening_balance),
            opened_at=self.opened_at,
            status=ShiftStatus(self.status),
            closing_balance=self._money(self.closing_balance),
            expected_balance=self._money(self.expected_balance),
            variance=self._money(self.variance),
            closed_at=self.closed_at,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, shift: CashShift) -> "CashShiftModel":
        model = cls(
            id=shift.shift_id,
            tenant_id=shift.tenant_id,
            user_id=shift.user_id,
            currency=shift.currency.code,
            opening_balance=shift.opening_balance.amount,
            opened_at=shift.opened_at,
        )
        model.apply_dto(shift)
        return model

    def apply_dto(self, shift: CashShift) -> None:
        """Copy the mutable (closing) fields from a domain shift."""
        self.status = shift.status.value
        self.closing_balance = (
            shift.closing_balance.amount if shift.closing_balance is not None else None
        )
        self.expected_balance = (
            shift.expected_balance.amount if shift.expected_balance is not None else None
        )
        self.variance = shift.variance.amount if shift.variance is not None else None
        self.closed_at = shift.closed_at
        self.notes = shift.notes
