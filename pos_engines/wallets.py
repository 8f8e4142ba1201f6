"""
Module: pos_engines.wallets
Responsibility:
    Per-wallet balances derived from the ledger, and validation of a
    transfer between two wallets.

A wallet is a money store named by payment method ("Cash", "Bank Transfer",
"Mobile Money", "Safe").  Its balance is the sum of IN entries minus the
sum of OUT entries recorded with that method.  Credit entries never move
money and so never belong to a wallet.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Transfer ids and
    timestamps are supplied by the caller.

Failure modes:
    - InvalidAmountError when the transfer amount is not positive.
    - InvalidTransferError for an unknown wallet or a same-wallet transfer.
    - InsufficientFundsError when the source wallet cannot cover it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from pos_engines.tracer import traced_engine
from pos_kernel.domain.records import Direction, LedgerCategory, LedgerEntry
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import (
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidTransferError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.wallets")


def _key(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True)
class WalletBalances:
    """Balances keyed by wallet name (as configured)."""

    currency: Currency
    balances: dict[str, Money]

    def get(self, wallet: str) -> Money | None:
        for name, balance in self.balances.items():
            if _key(name) == _key(wallet):
                return balance
        return None

    def resolve(self, wallet: str) -> str | None:
        """Configured spelling of ``wallet``, matched case-insensitively."""
        for name in self.balances:
            if _key(name) == _key(wallet):
                return name
        return None

    @property
    def total(self) -> Money:
        total = Money.zero(self.currency)
        for balance in self.balances.values():
            total = total + balance
        return total


@dataclass(frozen=True)
class TransferPlan:
    """The two TRANSFER ledger legs of a wallet-to-wallet move."""

    out_leg: LedgerEntry
    in_leg: LedgerEntry

    @property
    def legs(self) -> tuple[LedgerEntry, LedgerEntry]:
        return (self.out_leg, self.in_leg)


class WalletCalculator:
    """Derive wallet balances and plan transfers between wallets."""

    @traced_engine("wallet_balances", "1.0", fingerprint_fields=("wallet_names", "currency"))
    def balances(
        self,
        entries: Iterable[LedgerEntry],
        wallet_names: Sequence[str],
        currency: Currency | str,
    ) -> WalletBalances:
        cur = currency if isinstance(currency, Currency) else Currency(currency)
        by_key = {_key(name): name for name in wallet_names}
        result = {name: Money.zero(cur) for name in wallet_names}

        for entry in entries:
            if entry.is_credit:
                continue
            name = by_key.get(_key(entry.method))
            if name is None:
                continue
            if entry.amount.currency != cur:
                raise CurrencyMismatchError(
                    expected=cur.code, received=entry.amount.currency.code
                )
            if entry.direction is Direction.IN:
                result[name] = result[name] + entry.amount
            else:
                result[name] = result[name] - entry.amount

        return WalletBalances(currency=cur, balances=result)

    @traced_engine(
        "wallet_transfer", "1.0",
        fingerprint_fields=("from_wallet", "to_wallet", "amount", "transfer_id"),
    )
    def plan_transfer(
        self,
        balances: WalletBalances,
        from_wallet: str,
        to_wallet: str,
        amount: Money,
        *,
        tenant_id: str,
        transfer_id: str,
        timestamp: datetime,
        description: str | None = None,
    ) -> TransferPlan:
        """
        Validate a transfer and build its OUT and IN legs.

        Both legs share ``transfer_id`` as their reference id; their entry
        ids are ``<transfer_id>-out`` and ``<transfer_id>-in``.
        """
        if not amount.is_positive:
            raise InvalidAmountError(amount.amount, "transfer amount must be > 0")

        source = balances.resolve(from_wallet)
        target = balances.resolve(to_wallet)
        if source is None:
            raise InvalidTransferError(from_wallet, to_wallet, f"unknown wallet {from_wallet!r}")
        if target is None:
            raise InvalidTransferError(from_wallet, to_wallet, f"unknown wallet {to_wallet!r}")
        if source == target:
            raise InvalidTransferError(
                from_wallet, to_wallet, "source and destination must be different"
            )

        available = balances.balances[source]
        if amount > available:
            logger.warning("wallet_transfer_insufficient_funds", extra={
                "from_wallet": source,
                "available": available,
                "requested": amount,
            })
            raise InsufficientFundsError(
                wallet=source,
                available=str(available.amount),
                requested=str(amount.amount),
                currency=amount.currency.code,
            )

        def leg(direction: Direction, wallet: str, suffix: str) -> LedgerEntry:
            return LedgerEntry(
                entry_id=f"{transfer_id}-{suffix}",
                tenant_id=tenant_id,
                direction=direction,
                category=LedgerCategory.TRANSFER,
                amount=amount,
                method=wallet,
                timestamp=timestamp,
                reference_id=transfer_id,
                description=description,
            )

        logger.info("wallet_transfer_planned", extra={
            "transfer_id": transfer_id,
            "from_wallet": source,
            "to_wallet": target,
            "amount": amount,
        })
        return TransferPlan(
            out_leg=leg(Direction.OUT, source, "out"),
            in_leg=leg(Direction.IN, target, "in"),
        )
