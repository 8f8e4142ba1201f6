"""
Typed exception hierarchy for the POS kernel.

Every error a caller may need to react to has its own class, a static
``code`` class attribute (machine-readable, API-safe), and the data that
caused it stored as attributes. Callers catch by type and read attributes;
they never parse messages.

    PosKernelError (base)
    |
    +-- InvalidAmountError            INVALID_AMOUNT
    +-- InvalidObligationError        INVALID_OBLIGATION
    +-- InvalidStateError             INVALID_STATE
    |   +-- ShiftAlreadyClosedError   SHIFT_ALREADY_CLOSED
    |   +-- ShiftAlreadyOpenError     SHIFT_ALREADY_OPEN
    |   +-- UnappliedPaymentError     UNAPPLIED_PAYMENT
    +-- AmbiguousMatchError           AMBIGUOUS_MATCH
    +-- CurrencyMismatchError         CURRENCY_MISMATCH
    +-- InsufficientFundsError        INSUFFICIENT_FUNDS
    +-- InvalidTransferError          INVALID_TRANSFER
    +-- DocumentMappingError          DOCUMENT_MAPPING_ERROR
    |   +-- UnsupportedSchemaVersionError  UNSUPPORTED_SCHEMA_VERSION
    +-- RecordNotFoundError           RECORD_NOT_FOUND
    +-- ConcurrencyError              CONCURRENCY_ERROR
    |   +-- OptimisticLockError       OPTIMISTIC_LOCK_CONFLICT
    +-- ImmutabilityViolationError    IMMUTABILITY_VIOLATION

Handling patterns:

    try:
        result = allocator.allocate(obligations=unpaid, payment=amount)
    except InvalidAmountError as e:
        return {"error": e.code, "amount": e.amount}

    try:
        closed = reconciler.close_shift(shift, actual, entries, closed_at=now)
    except ShiftAlreadyClosedError as e:
        notify_user(f"Shift {e.shift_id} is already closed")

A positive allocation remainder is NOT an error; it is returned in the
``AllocationResult`` so the caller can decide what to do with it.
"""


class PosKernelError(Exception):
    """
    Base exception for all POS kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "POS_KERNEL_ERROR"


class InvalidAmountError(PosKernelError):
    """A negative or non-numeric amount was supplied."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidObligationError(PosKernelError):
    """
    Obligation data is inconsistent.

    Raised for a non-positive total, a negative paid amount, a paid amount
    above the total (data corruption signal), or a paid amount that would
    decrease.
    """

    code: str = "INVALID_OBLIGATION"

    def __init__(self, obligation_id: str, reason: str):
        self.obligation_id = str(obligation_id)
        self.reason = reason
        super().__init__(f"Invalid obligation {obligation_id}: {reason}")


class InvalidStateError(PosKernelError):
    """Operation is not allowed in the current state."""

    code: str = "INVALID_STATE"

    def __init__(self, message: str):
        super().__init__(message)


class ShiftAlreadyClosedError(InvalidStateError):
    """Attempt to close (or modify) a shift that is already closed."""

    code: str = "SHIFT_ALREADY_CLOSED"

    def __init__(self, shift_id: str):
        self.shift_id = str(shift_id)
        super().__init__(f"Cash shift {shift_id} is already closed")


class ShiftAlreadyOpenError(InvalidStateError):
    """The cashier already has an open shift for this tenant."""

    code: str = "SHIFT_ALREADY_OPEN"

    def __init__(self, tenant_id: str, user_id: str, shift_id: str):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.shift_id = str(shift_id)
        super().__init__(
            f"User {user_id} already has open shift {shift_id} "
            f"in tenant {tenant_id}"
        )


class UnappliedPaymentError(InvalidStateError):
    """A payment that had to be fully consumed left a remainder."""

    code: str = "UNAPPLIED_PAYMENT"

    def __init__(self, payment: str, remainder: str, currency: str):
        self.payment = payment
        self.remainder = remainder
        self.currency = currency
        super().__init__(
            f"Payment {payment} {currency} left {remainder} {currency} "
            "unapplied"
        )


class AmbiguousMatchError(PosKernelError):
    """A ledger entry fuzzy-matches more than one sale."""

    code: str = "AMBIGUOUS_MATCH"

    def __init__(self, entry_id: str, candidate_ids: list[str]):
        self.entry_id = str(entry_id)
        self.candidate_ids = [str(c) for c in candidate_ids]
        super().__init__(
            f"Ledger entry {entry_id} matches {len(candidate_ids)} sales: "
            f"{', '.join(self.candidate_ids)}"
        )


class CurrencyMismatchError(PosKernelError):
    """Amounts in different currencies were combined."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = str(expected)
        self.received = str(received)
        super().__init__(f"Currency mismatch: expected {expected}, got {received}")


class InsufficientFundsError(PosKernelError):
    """The source wallet does not hold enough money for a transfer."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, wallet: str, available: str, requested: str, currency: str):
        self.wallet = wallet
        self.available = available
        self.requested = requested
        self.currency = currency
        super().__init__(
            f"Insufficient balance in {wallet}: available {available} "
            f"{currency}, requested {requested} {currency}"
        )


class InvalidTransferError(PosKernelError):
    """Transfer request is malformed (same wallet, unknown wallet)."""

    code: str = "INVALID_TRANSFER"

    def __init__(self, from_wallet: str, to_wallet: str, reason: str):
        self.from_wallet = from_wallet
        self.to_wallet = to_wallet
        self.reason = reason
        super().__init__(f"Invalid transfer {from_wallet} -> {to_wallet}: {reason}")


class DocumentMappingError(PosKernelError):
    """A storage document could not be mapped onto a domain record."""

    code: str = "DOCUMENT_MAPPING_ERROR"

    def __init__(self, kind: str, document_id: str | None, reason: str):
        self.kind = kind
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot map {kind} document {document_id}: {reason}")


class UnsupportedSchemaVersionError(DocumentMappingError):
    """Document schema version is newer than this code understands."""

    code: str = "UNSUPPORTED_SCHEMA_VERSION"

    def __init__(self, kind: str, document_id: str | None, schema_version: int):
        self.schema_version = schema_version
        super().__init__(
            kind,
            document_id,
            f"unsupported schema version {schema_version}",
        )


class RecordNotFoundError(PosKernelError):
    """A persisted record with the given id does not exist for the tenant."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = str(record_id)
        super().__init__(f"{record_type} not found: {record_id}")


class ConcurrencyError(PosKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Concurrent modification detected and retries were exhausted."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id} "
            f"after {attempts} attempt(s): modified by another transaction"
        )


class ImmutabilityViolationError(PosKernelError):
    """Attempt to modify a record that is append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
