"""SQLAlchemy ORM models for the credit ledger."""

from pos_kernel.models.cash_shift import CashShiftModel
from pos_kernel.models.ledger_entry import LedgerEntryModel
from pos_kernel.models.obligation import ObligationModel

__all__ = [
    "CashShiftModel",
    "LedgerEntryModel",
    "ObligationModel",
]
