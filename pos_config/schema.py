"""
Configuration schema (``pos_config.schema``).

Frozen dataclasses describing the runtime settings of the credit ledger.
Every field has a default, so a partial YAML file only overrides what it
names.  Values are validated on construction; invalid ones raise
``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pos_kernel.domain.currency import CurrencyRegistry

MATCH_POLICIES = frozenset({"first_match", "strict"})


@dataclass(frozen=True)
class MatchingConfig:
    """Fuzzy sale-matching thresholds."""

    amount_tolerance: Decimal = Decimal("0.05")
    time_window_seconds: int = 300
    policy: str = "first_match"

    def __post_init__(self) -> None:
        if self.amount_tolerance < Decimal("0"):
            raise ValueError(
                f"matching.amount_tolerance must be >= 0, got {self.amount_tolerance}"
            )
        if self.time_window_seconds < 0:
            raise ValueError(
                f"matching.time_window_seconds must be >= 0, got {self.time_window_seconds}"
            )
        if self.policy not in MATCH_POLICIES:
            raise ValueError(
                f"matching.policy must be one of {sorted(MATCH_POLICIES)}, got {self.policy!r}"
            )


@dataclass(frozen=True)
class AgingBucketConfig:
    name: str
    min_days: int
    max_days: int | None = None


DEFAULT_AGING_BUCKETS: tuple[AgingBucketConfig, ...] = (
    AgingBucketConfig("0-30", 0, 30),
    AgingBucketConfig("31-60", 31, 60),
    AgingBucketConfig("61-90", 61, 90),
    AgingBucketConfig("90+", 91, None),
)

DEFAULT_WALLETS: tuple[str, ...] = ("Cash", "Bank Transfer", "Mobile Money", "Safe")


@dataclass(frozen=True)
class PosConfig:
    """
    Runtime configuration of the credit ledger.

    Contract:
        Immutable.  Engines never read it; services pass the relevant
        values into engine constructors and calls.
    """

    currency: str = "BDT"
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    aging_buckets: tuple[AgingBucketConfig, ...] = DEFAULT_AGING_BUCKETS
    wallets: tuple[str, ...] = DEFAULT_WALLETS
    allocation_max_retries: int = 3
    schema_version: int = 2
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))
        if self.allocation_max_retries < 1:
            raise ValueError(
                f"allocation_max_retries must be >= 1, got {self.allocation_max_retries}"
            )
        if self.schema_version < 1:
            raise ValueError(f"schema_version must be >= 1, got {self.schema_version}")
        if not self.wallets:
            raise ValueError("at least one wallet must be configured")
        self._check_buckets()

    def _check_buckets(self) -> None:
        buckets = self.aging_buckets
        if not buckets:
            raise ValueError("at least one aging bucket must be configured")
        if buckets[0].min_days != 0:
            raise ValueError("the first aging bucket must start at day 0")
        if buckets[-1].max_days is not None:
            raise ValueError("the last aging bucket must be unbounded")
        for prev, nxt in zip(buckets, buckets[1:]):
            if prev.max_days is None or nxt.min_days != prev.max_days + 1:
                raise ValueError(
                    f"aging buckets {prev.name!r} and {nxt.name!r} are not contiguous"
                )
