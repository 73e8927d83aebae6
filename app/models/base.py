# app/models/base.py
"""
Base model with common fields and functionality (SQLAlchemy 2.x, DeclarativeBase).

- Naming conventions for constraints/indexes (stable names across dialects).
- Opaque string primary keys (uuid4 hex), generated client-side.
- Naive UTC timestamps everywhere (DateTime without timezone=True).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Naive UTC "now" (all DateTime columns are stored without tzinfo)."""
    return datetime.now(UTC).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


def to_decimal(v: Any) -> Decimal:
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


def money(v: Any) -> Decimal:
    return to_decimal(v).quantize(Decimal("0.01"))


NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix__%(table_name)s__%(column_0_N_name)s",
    "uq": "uq__%(table_name)s__%(column_0_N_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_N_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}


class Base(DeclarativeBase):
    """Root declarative base with naming conventions."""

    metadata = MetaData(naming_convention=NAMING_CONVENTIONS)

    def __repr__(self) -> str:  # pragma: no cover
        cols = []
        for k in self.__mapper__.c.keys():
            v = getattr(self, k, None)
            if isinstance(v, str) and len(v) > 64:
                v = v[:64] + "…"
            cols.append(f"{k}={v!r}")
        return f"<{self.__class__.__name__}({', '.join(cols)})>"


class BaseModel(Base):
    """Common id/created_at/updated_at columns."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )
