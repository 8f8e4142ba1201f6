"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here intercept them and reject changes to records
that are append-only:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Entity            | When immutable          | Why
------------------|-------------------------|---------------------------------
LedgerEntryModel  | ALWAYS (from creation)  | Corrections are new ADJUSTMENTs
CashShiftModel    | Once status = closed    | Z-report figures are final
"""

from sqlalchemy import event, inspect

from pos_kernel.exceptions import ImmutabilityViolationError
from pos_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Row bookkeeping may move even when business fields are frozen.
_BOOKKEEPING_FIELDS = frozenset({"recorded_at", "updated_at", "version"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _BOOKKEEPING_FIELDS and attr.history.has_changes()
    ]


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _blocked(
            "LedgerEntry",
            str(target.id),
            "UPDATE",
            f"ledger entries are append-only (changed: {', '.join(changed)})",
        )


def _check_ledger_entry_delete(mapper, connection, target):
    _blocked("LedgerEntry", str(target.id), "DELETE", "ledger entries cannot be deleted")


def _was_closed(target) -> bool:
    from pos_kernel.domain.records import ShiftStatus

    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0] == ShiftStatus.CLOSED.value
    return target.status == ShiftStatus.CLOSED.value and not history.added


def _check_cash_shift_immutability(mapper, connection, target):
    if not _was_closed(target):
        return
    changed = _changed_fields(target)
    if changed:
        _blocked(
            "CashShift",
            str(target.id),
            "UPDATE",
            f"closed shifts are frozen (changed: {', '.join(changed)})",
        )


def _check_cash_shift_delete(mapper, connection, target):
    if _was_closed(target):
        _blocked("CashShift", str(target.id), "DELETE", "closed shifts cannot be deleted")


_LISTENERS = (
    ("LedgerEntryModel", "before_update", _check_ledger_entry_immutability),
    ("LedgerEntryModel", "before_delete", _check_ledger_entry_delete),
    ("CashShiftModel", "before_update", _check_cash_shift_immutability),
    ("CashShiftModel", "before_delete", _check_cash_shift_delete),
)


def _targets() -> dict:
    from pos_kernel.models.cash_shift import CashShiftModel
    from pos_kernel.models.ledger_entry import LedgerEntryModel

    return {"LedgerEntryModel": LedgerEntryModel, "CashShiftModel": CashShiftModel}


def register_immutability_listeners() -> None:
    """Register all immutability listeners (safe to call more than once)."""
    targets = _targets()
    for name, event_name, fn in _LISTENERS:
        if not event.contains(targets[name], event_name, fn):
            event.listen(targets[name], event_name, fn)
