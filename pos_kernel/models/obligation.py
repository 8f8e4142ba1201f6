"""
Module: pos_kernel.models.obligation
Responsibility: ORM persistence for payable obligations (credit sales and
    supplier purchase orders).
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one writer per obligation: ``version`` is the mapper's
      version_id_col, so an UPDATE issued against a stale version matches
      no rows and SQLAlchemy raises StaleDataError.
    - payment_status is never set by hand; it is recomputed from
      amount_paid and total by the shared classifier on every write.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase
from pos_kernel.domain.payment_status import classify_payment_status
from pos_kernel.domain.records import Obligation, ObligationKind
from pos_kernel.domain.values import Money


class ObligationModel(TrackedBase):
    """A credit sale or purchase order and its cumulative paid amount."""

    __tablename__ = "obligations"

    __table_args__ = (
        Index("idx_obligation_tenant_entity", "tenant_id", "entity_id"),
        Index("idx_obligation_status", "payment_status"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Business creation time of the sale / order (the FIFO key).
    issued_at: Mapped[datetime] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> Obligation:
        return Obligation(
            obligation_id=self.id,
            total=Money.of(self.total, self.currency).round(),
            amount_paid=Money.of(self.amount_paid, self.currency).round(),
            created_at=self.issued_at,
            is_credit=self.is_credit,
            entity_id=self.entity_id,
            kind=ObligationKind(self.kind),
        )

    @classmethod
    def from_dto(cls, obligation: Obligation, tenant_id: str) -> "ObligationModel":
        return cls(
            id=obligation.obligation_id,
            tenant_id=tenant_id,
            kind=obligation.kind.value,
            entity_id=obligation.entity_id,
            total=obligation.total.amount,
            amount_paid=obligation.amount_paid.amount,
            currency=obligation.currency.code,
            payment_status=obligation.status.value,
            is_credit=obligation.is_credit,
            issued_at=obligation.created_at,
        )


@event.listens_for(ObligationModel, "before_insert")
@event.listens_for(ObligationModel, "before_update")
def _sync_payment_status(mapper, connection, target: ObligationModel) -> None:
    target.payment_status = classify_payment_status(
        Decimal(target.amount_paid), Decimal(target.total)
    ).value
