"""
pos_services -- imperative shell around the pure engines.

Services own persistence, transactions, optimistic-lock retries and the
clock.  Raw storage documents are translated to domain records once, in
``pos_services.document_mapper``.
"""

from pos_services.credit_service import CreditLedgerService, EntityStatement, PaymentReceipt
from pos_services.shift_service import CashShiftService
from pos_services.wallet_service import WalletService

__all__ = [
    "CashShiftService",
    "CreditLedgerService",
    "EntityStatement",
    "PaymentReceipt",
    "WalletService",
]
