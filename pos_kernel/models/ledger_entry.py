"""
Module: pos_kernel.models.ledger_entry
Responsibility: ORM persistence for immutable ledger entries.
Architecture position: Kernel > Models.  May import from db/base.py and
    pos_kernel.domain (for the to_dto/from_dto conversion only).

Invariants enforced:
    - Append-only: rows are never updated or deleted once written
      (enforced by listeners in db/immutability.py).
    - Amounts are stored as Numeric with their ISO currency alongside.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase
from pos_kernel.domain.records import Direction, LedgerCategory, LedgerEntry
from pos_kernel.domain.values import Money


class LedgerEntryModel(TrackedBase):
    """One ledger movement, scoped to a tenant."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("idx_ledger_tenant_entity", "tenant_id", "entity_id"),
        Index("idx_ledger_tenant_timestamp", "tenant_id", "timestamp"),
        Index("idx_ledger_reference", "reference_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(3), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_dto(self) -> LedgerEntry:
        return LedgerEntry(
            entry_id=self.id,
            tenant_id=self.tenant_id,
            direction=Direction(self.direction),
            category=LedgerCategory(self.category),
            amount=Money.of(self.amount, self.currency).round(),
            method=self.method,
            timestamp=self.timestamp,
            entity_id=self.entity_id,
            reference_id=self.reference_id,
            description=self.description,
            actor_id=self.actor_id,
        )

    @classmethod
    def from_dto(cls, entry: LedgerEntry) -> "LedgerEntryModel":
        return cls(
            id=entry.entry_id,
            tenant_id=entry.tenant_id,
            direction=entry.direction.value,
            category=entry.category.value,
            amount=entry.amount.amount,
            currency=entry.amount.currency.code,
            method=entry.method,
            timestamp=entry.timestamp,
            entity_id=entry.entity_id,
            reference_id=entry.reference_id,
            description=entry.description,
            actor_id=entry.actor_id,
        )
