"""
POS Kernel - credit ledger core for a multi-tenant retail point of sale.

Provides:
- Immutable value objects (Money, Currency) and ledger/obligation/shift records
- A single payment-status classifier shared by every caller
- Typed exceptions with machine-readable codes
- Structured JSON logging
- SQLAlchemy persistence for ledger entries, obligations and cash shifts
"""

__version__ = "0.1.0"
