"""
WalletService -- wallet balances and transfers between wallets.

Wallets are the configured money stores (Cash, Bank Transfer, Mobile
Money, Safe); a wallet's balance is derived from the ledger entries whose
method names it.  A transfer is two TRANSFER entries written in one
transaction.
"""

from __future__ import annotations

from sqlalchemy import select

from pos_engines.wallets import TransferPlan, WalletBalances, WalletCalculator
from pos_kernel.db.base import new_id
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import CurrencyMismatchError
from pos_kernel.logging_config import LogContext, get_logger
from pos_kernel.models.ledger_entry import LedgerEntryModel
from pos_services.base import BaseService

logger = get_logger("services.wallet")


class WalletService(BaseService):
    """Read wallet balances and move money between wallets."""

    def __init__(self, session_factory, clock=None, config=None):
        super().__init__(session_factory, clock, config)
        self._calculator = WalletCalculator()

    def balances(self, tenant_id: str) -> WalletBalances:
        with self._transaction() as session:
            stmt = select(LedgerEntryModel).where(LedgerEntryModel.tenant_id == tenant_id)
            entries = [row.to_dto() for row in session.scalars(stmt)]
        return self._calculator.balances(entries, self._config.wallets, self._currency)

    def transfer(
        self,
        tenant_id: str,
        from_wallet: str,
        to_wallet: str,
        amount: Money,
        *,
        description: str | None = None,
        transfer_id: str | None = None,
    ) -> TransferPlan:
        """
        Move ``amount`` from one wallet to another.

        Raises:
            InvalidAmountError: amount is not positive.
            InvalidTransferError: unknown wallet, or both sides the same.
            InsufficientFundsError: the source wallet holds less than amount.
        """
        if amount.currency != self._currency:
            raise CurrencyMismatchError(
                expected=self._currency.code, received=amount.currency.code
            )
        transfer_id = transfer_id or new_id()

        with LogContext.bind(tenant_id=tenant_id):
            with self._transaction() as session:
                stmt = select(LedgerEntryModel).where(LedgerEntryModel.tenant_id == tenant_id)
                entries = [row.to_dto() for row in session.scalars(stmt)]
                balances = self._calculator.balances(
                    entries, self._config.wallets, self._currency
                )
                plan = self._calculator.plan_transfer(
                    balances,
                    from_wallet,
                    to_wallet,
                    amount,
                    tenant_id=tenant_id,
                    transfer_id=transfer_id,
                    timestamp=self._clock.now(),
                    description=description,
                )
                for leg in plan.legs:
                    session.add(LedgerEntryModel.from_dto(leg))

            logger.info("wallet_transfer_recorded", extra={
                "transfer_id": transfer_id,
                "from_wallet": plan.out_leg.method,
                "to_wallet": plan.in_leg.method,
                "amount": amount,
            })
        return plan
