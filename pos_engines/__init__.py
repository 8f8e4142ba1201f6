"""
Module: pos_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for pos_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel (domain, exceptions, logging) and sibling
    engine modules.  MUST NOT import pos_services, pos_config or SQLAlchemy.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps and dates are
      explicit parameters supplied by the caller.
    - Decimal-only arithmetic through Money.
    - Determinism: identical inputs always produce identical outputs.

Every public entry point is traced via ``@traced_engine`` (see
``pos_engines.tracer``), emitting a POS_ENGINE_TRACE log record.

Usage:
    from pos_engines import FifoAllocator, LedgerAggregator, ShiftReconciler
"""

from pos_engines.aging import (
    DEFAULT_BUCKETS,
    AgeBucket,
    AgedItem,
    AgingCalculator,
    AgingReport,
    AgingRow,
    Counterparty,
)
from pos_engines.allocation import (
    AllocationLine,
    AllocationResult,
    BalanceSplit,
    FifoAllocator,
    ObligationSplit,
    fifo_order,
)
from pos_engines.ledger import (
    CashMovement,
    EntityBalance,
    LedgerAggregator,
    LedgerTotals,
    OutstandingSummary,
)
from pos_engines.matching import (
    AmbiguousMatch,
    MatchPolicy,
    MatchReason,
    MatchReport,
    MatchTolerance,
    ObligationMatcher,
    SaleMatch,
)
from pos_engines.shift import ShiftReconciler, ShiftReconciliation, ZReport
from pos_engines.tracer import compute_input_fingerprint, traced_engine
from pos_engines.wallets import TransferPlan, WalletBalances, WalletCalculator

__all__ = [
    # Aging
    "DEFAULT_BUCKETS",
    "AgeBucket",
    "AgedItem",
    "AgingCalculator",
    "AgingReport",
    "AgingRow",
    "Counterparty",
    # Allocation
    "AllocationLine",
    "AllocationResult",
    "BalanceSplit",
    "FifoAllocator",
    "ObligationSplit",
    "fifo_order",
    # Ledger
    "CashMovement",
    "EntityBalance",
    "LedgerAggregator",
    "LedgerTotals",
    "OutstandingSummary",
    # Matching
    "AmbiguousMatch",
    "MatchPolicy",
    "MatchReason",
    "MatchReport",
    "MatchTolerance",
    "ObligationMatcher",
    "SaleMatch",
    # Shift
    "ShiftReconciler",
    "ShiftReconciliation",
    "ZReport",
    # Wallets
    "TransferPlan",
    "WalletBalances",
    "WalletCalculator",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
