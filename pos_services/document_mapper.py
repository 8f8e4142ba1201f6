"""
Module: pos_services.document_mapper
Responsibility:
    Upgrade raw storage documents to the current schema version and map
    them onto domain records.  This is the ONLY place that knows about the
    storage layout (camelCase keys, ``$id`` / ``$createdAt``, the JSON
    encoded ``saleData`` blob, optional fields missing on older rows).

Architecture position:
    Services -- storage boundary.  Pure transformation, zero I/O.

Document kinds:
    ``payment``         ledger entry (``payments`` collection)
    ``purchase_order``  supplier obligation
    ``sale``            completed sale with its ``saleData`` blob
    ``cash_shift``      cash-drawer shift

Versioning:
    Documents carry ``schemaVersion``; a missing value means 1.  Upgrades
    run one step at a time through ``_MIGRATIONS[kind][from_version]``
    until the document reaches ``target_version``.

Failure modes:
    - DocumentMappingError on an unknown kind, a missing required key or
      an unparseable value.
    - UnsupportedSchemaVersionError when a document is newer than
      ``target_version``.

Usage:
    doc = upgrade_document("payment", raw)
    entry = to_ledger_entry(doc, currency="BDT")
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pos_kernel.domain.payment_status import classify_payment_status
from pos_kernel.domain.records import (
    CashShift,
    Direction,
    LedgerCategory,
    LedgerEntry,
    Obligation,
    ObligationKind,
    SaleItem,
    SaleRecord,
    ShiftStatus,
    is_credit_method,
)
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import DocumentMappingError, UnsupportedSchemaVersionError
from pos_kernel.logging_config import get_logger

logger = get_logger("services.document_mapper")

CURRENT_SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schemaVersion"

Document = dict[str, Any]
Migration = Callable[[Document], Document]


# -----------------------------------------------------------------------------
# Value coercion
# -----------------------------------------------------------------------------


def _doc_id(doc: Document) -> str | None:
    value = doc.get("$id")
    return str(value) if value is not None else None


def _require(kind: str, doc: Document, key: str) -> Any:
    value = doc.get(key)
    if value is None:
        raise DocumentMappingError(kind, _doc_id(doc), f"missing required key {key!r}")
    return value


def to_decimal(value: Any, kind: str = "document", doc_id: str | None = None) -> Decimal:
    """Storage number -> Decimal.  Floats go through ``str`` so that
    ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion."""
    if isinstance(value, bool):
        raise DocumentMappingError(kind, doc_id, f"expected a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise DocumentMappingError(kind, doc_id, f"expected a number, got {value!r}") from e


def to_money(
    value: Any,
    currency: Currency | str,
    kind: str = "document",
    doc_id: str | None = None,
) -> Money:
    """Storage number -> Money rounded to the currency's minor unit."""
    return Money.of(to_decimal(value, kind, doc_id), currency).round()


def to_enum(enum_cls: type[Enum], value: Any, kind: str, doc_id: str | None) -> Any:
    try:
        return enum_cls(value)
    except ValueError as e:
        raise DocumentMappingError(
            kind, doc_id, f"bad {enum_cls.__name__} value {value!r}"
        ) from e


def to_datetime(value: Any, kind: str = "document", doc_id: str | None = None) -> datetime:
    """ISO-8601 string -> aware datetime.  Naive values are read as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError as e:
            raise DocumentMappingError(kind, doc_id, f"bad timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# -----------------------------------------------------------------------------
# Migrations (version N -> N + 1)
# -----------------------------------------------------------------------------


def _payment_v1_to_v2(doc: Document) -> Document:
    if not doc.get("method"):
        doc["method"] = "Cash"
    if doc.get("date") is None:
        doc["date"] = doc.get("createdAt") or doc.get("$createdAt")
    return doc


def _purchase_order_v1_to_v2(doc: Document) -> Document:
    if doc.get("amountPaid") is None:
        doc["amountPaid"] = 0
    if doc.get("createdAt") is None:
        doc["createdAt"] = doc.get("$createdAt")
    total = doc.get("totalAmount")
    if total is not None:
        doc["paymentStatus"] = classify_payment_status(
            to_decimal(doc["amountPaid"], "purchase_order", _doc_id(doc)),
            to_decimal(total, "purchase_order", _doc_id(doc)),
        ).value
    return doc


def _sale_v1_to_v2(doc: Document) -> Document:
    raw = doc.get("saleData")
    if isinstance(raw, str):
        try:
            doc["saleData"] = json.loads(raw)
        except json.JSONDecodeError as e:
            raise DocumentMappingError("sale", _doc_id(doc), "saleData is not valid JSON") from e
    sale_data = doc.get("saleData") or {}
    sale_data.setdefault("items", [])
    for key in ("subtotal", "discount", "tax"):
        if sale_data.get(key) is None:
            sale_data[key] = 0
    if not sale_data.get("paymentMethod"):
        sale_data["paymentMethod"] = "Cash"
    doc["saleData"] = sale_data
    return doc


def _cash_shift_v1_to_v2(doc: Document) -> Document:
    if doc.get("openingBalance") is None:
        doc["openingBalance"] = 0
    if not doc.get("status"):
        doc["status"] = ShiftStatus.CLOSED.value if doc.get("closedAt") else ShiftStatus.OPEN.value
    return doc


_MIGRATIONS: dict[str, dict[int, Migration]] = {
    "payment": {1: _payment_v1_to_v2},
    "purchase_order": {1: _purchase_order_v1_to_v2},
    "sale": {1: _sale_v1_to_v2},
    "cash_shift": {1: _cash_shift_v1_to_v2},
}

DOCUMENT_KINDS = frozenset(_MIGRATIONS)


def upgrade_document(
    kind: str,
    doc: Document,
    target_version: int = CURRENT_SCHEMA_VERSION,
) -> Document:
    """
    Return a copy of ``doc`` upgraded to ``target_version``.

    The input is never mutated.  A document already at the target version
    is returned as an unchanged copy.
    """
    migrations = _MIGRATIONS.get(kind)
    if migrations is None:
        raise DocumentMappingError(kind, _doc_id(doc), f"unknown document kind {kind!r}")

    upgraded = copy.deepcopy(doc)
    version = upgraded.get(SCHEMA_VERSION_KEY) or 1
    if not isinstance(version, int) or isinstance(version, bool):
        raise DocumentMappingError(kind, _doc_id(doc), f"bad schema version {version!r}")
    if version > target_version:
        raise UnsupportedSchemaVersionError(kind, _doc_id(doc), version)

    start = version
    while version < target_version:
        step = migrations.get(version)
        if step is None:
            raise DocumentMappingError(
                kind, _doc_id(doc), f"no migration from schema version {version}"
            )
        upgraded = step(upgraded)
        version += 1
    upgraded[SCHEMA_VERSION_KEY] = version

    if start != version:
        logger.debug("document_upgraded", extra={
            "kind": kind,
            "document_id": _doc_id(doc),
            "from_version": start,
            "to_version": version,
        })
    return upgraded


# -----------------------------------------------------------------------------
# Mapping to domain records (documents are upgraded first)
# -----------------------------------------------------------------------------


def to_ledger_entry(doc: Document, currency: Currency | str) -> LedgerEntry:
    doc = upgrade_document("payment", doc)
    doc_id = _require("payment", doc, "$id")
    return LedgerEntry(
        entry_id=str(doc_id),
        tenant_id=str(_require("payment", doc, "tenantId")),
        direction=to_enum(Direction, _require("payment", doc, "type"), "payment", doc_id),
        category=to_enum(
            LedgerCategory, _require("payment", doc, "category"), "payment", doc_id
        ),
        amount=to_money(_require("payment", doc, "amount"), currency, "payment", doc_id),
        method=str(doc["method"]),
        timestamp=to_datetime(_require("payment", doc, "date"), "payment", doc_id),
        entity_id=doc.get("entityId") or None,
        reference_id=doc.get("referenceId") or None,
        description=doc.get("description") or None,
        actor_id=doc.get("cashierId") or doc.get("userId") or None,
    )


def to_purchase_obligation(doc: Document, currency: Currency | str) -> Obligation:
    """Purchase orders are always on supplier credit until paid."""
    doc = upgrade_document("purchase_order", doc)
    doc_id = _require("purchase_order", doc, "$id")
    return Obligation(
        obligation_id=str(doc_id),
        total=to_money(
            _require("purchase_order", doc, "totalAmount"), currency, "purchase_order", doc_id
        ),
        amount_paid=to_money(doc["amountPaid"], currency, "purchase_order", doc_id),
        created_at=to_datetime(
            _require("purchase_order", doc, "createdAt"), "purchase_order", doc_id
        ),
        is_credit=True,
        entity_id=doc.get("supplierId") or None,
        kind=ObligationKind.PURCHASE_ORDER,
    )


def to_sale_record(doc: Document, currency: Currency | str) -> SaleRecord:
    doc = upgrade_document("sale", doc)
    doc_id = _require("sale", doc, "$id")
    data = doc["saleData"]

    items = tuple(
        SaleItem(
            product_id=str(_require("sale", item, "productId")),
            quantity=to_decimal(_require("sale", item, "quantity"), "sale", doc_id),
            unit_price=to_money(_require("sale", item, "price"), currency, "sale", doc_id),
        )
        for item in data["items"]
    )
    completed_at = to_datetime(
        data.get("completedAt") or _require("sale", doc, "$createdAt"), "sale", doc_id
    )
    created_raw = doc.get("createdAt") or doc.get("$createdAt")

    return SaleRecord(
        sale_id=str(doc_id),
        total=to_money(_require("sale", data, "total"), currency, "sale", doc_id),
        completed_at=completed_at,
        payment_method=str(data["paymentMethod"]),
        customer_id=data.get("customerId") or None,
        items=items,
        subtotal=to_money(data["subtotal"], currency, "sale", doc_id),
        discount=to_money(data["discount"], currency, "sale", doc_id),
        tax=to_money(data["tax"], currency, "sale", doc_id),
        cashier_id=data.get("cashierId") or None,
        created_at=to_datetime(created_raw, "sale", doc_id) if created_raw else None,
    )


def to_sale_obligation(
    doc: Document,
    currency: Currency | str,
    amount_paid: Money | None = None,
) -> Obligation:
    """A sale document as an obligation; credit iff paid on credit."""
    sale = to_sale_record(doc, currency)
    if amount_paid is None and not is_credit_method(sale.payment_method):
        amount_paid = sale.total
    return sale.to_obligation(amount_paid)


def to_cash_shift(doc: Document, currency: Currency | str) -> CashShift:
    doc = upgrade_document("cash_shift", doc)
    doc_id = _require("cash_shift", doc, "$id")

    def optional_money(key: str) -> Money | None:
        value = doc.get(key)
        return to_money(value, currency, "cash_shift", doc_id) if value is not None else None

    closed_at = doc.get("closedAt")
    return CashShift(
        shift_id=str(doc_id),
        tenant_id=str(_require("cash_shift", doc, "tenantId")),
        user_id=str(_require("cash_shift", doc, "userId")),
        opening_balance=to_money(doc["openingBalance"], currency, "cash_shift", doc_id),
        opened_at=to_datetime(
            doc.get("openedAt") or _require("cash_shift", doc, "$createdAt"),
            "cash_shift", doc_id,
        ),
        status=to_enum(ShiftStatus, doc["status"], "cash_shift", doc_id),
        closing_balance=optional_money("closingBalance"),
        expected_balance=optional_money("expectedBalance"),
        variance=optional_money("variance"),
        closed_at=to_datetime(closed_at, "cash_shift", doc_id) if closed_at else None,
        notes=doc.get("notes") or None,
    )
