"""
BaseService -- common constructor and unit-of-work helper for the
persistence services.

Responsibility:
    Holds the session factory, clock and configuration every service
    needs, and opens one transaction per public operation.

Architecture position:
    Services -- imperative shell around the pure engines.

Invariants enforced:
    - One public call is one transaction: committed on success, rolled back
      on any exception.  Services own the boundary because a payment may
      have to re-run its whole read-allocate-write cycle.
    - The clock is injected; services never read wall time directly.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from pos_config import PosConfig, get_active_config
from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.values import Currency
from pos_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService:
    """
    Base class for services that read and write ledger tables.

    Args:
        session_factory: Callable returning a new SQLAlchemy ``Session``.
        clock: Time source for timestamps the service stamps itself.
        config: Runtime configuration; defaults to ``get_active_config()``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: PosConfig | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._currency = Currency(self._config.currency)

    @property
    def currency(self) -> Currency:
        return self._currency

    @contextmanager
    def _transaction(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.debug("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()
