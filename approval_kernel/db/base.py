"""
Module: approval_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the integer primary key convention, the type annotation map for
    consistent column types, and the TimestampedBase mixin.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/, or outer
    layers.

Invariants enforced:
    - Decimal maps to Numeric(18, 2): record totals are currency amounts.
      NEVER use float for money.
    - datetime maps to DateTime(timezone=True).  Values written are always
      produced by an injected Clock in UTC; ``as_utc`` restores the tzinfo
      on backends (SQLite) that drop it.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    Guarantees:
        - id is an autoincrementing integer (the record's internal numeric id).
        - Decimal maps to Numeric(18, 2); datetime to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampedBase(Base):
    """Abstract base carrying created_at/updated_at, written from the Clock."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
