"""
Module: pos_kernel.db.base
Responsibility: Declarative base classes for the ledger's ORM models.
    Provides the string primary key convention, the type annotation map
    that keeps money in Numeric columns, and a UTC datetime column type.
Architecture position: Kernel > DB.  ALL model files import from here.
    This module MUST NOT import from models/, domain/, or outer layers.

Invariants enforced:
    - Decimal precision: Decimal maps to Numeric(38, 9).  Floats are never
      used for monetary amounts.
    - Aware timestamps: every datetime column round-trips as an aware UTC
      datetime, including on backends (SQLite) that store naive values.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def new_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as UTC.

    Contract:
        Binds only aware datetimes (naive values raise ValueError).  Values
        are normalized to UTC; dialects without timezone support get the
        naive UTC wall time.  Loaded values are always aware UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime cannot be stored: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Guarantees:
        - id is a String(64) primary key; generated as a uuid4 string when
          the caller does not supply one (storage document ids are opaque).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )


class TrackedBase(Base):
    """
    Abstract base with row bookkeeping timestamps.

    ``recorded_at`` is when the row was written, not the business time of
    the event it describes (each model carries its own business timestamp).
    """

    __abstract__ = True

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        onupdate=func.now(),
        nullable=True,
    )

