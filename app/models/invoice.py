# app/models/invoice.py
"""
Invoice and InvoiceCounter.

- One invoice per order, numbered FACT-<year>-<NNNN>.
- total == subtotal + shipping_cost, enforced by recalculate() and a CHECK constraint.
- InvoiceCounter is a single row keyed "default"; only
  app.services.invoice_service.allocate_invoice_number mutates it.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Any

from sqlalchemy import CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.models.base import Base, BaseModel, money, utc_now

INVOICE_COUNTER_KEY = "default"
INVOICE_NUMBER_PREFIX = "FACT"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    GENERATED = "GENERATED"
    SENT = "SENT"
    CANCELLED = "CANCELLED"


def format_invoice_number(year: int, counter: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}-{year}-{counter:04d}"


class Invoice(BaseModel):
    __tablename__ = "invoices"

    order_id = Column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    invoice_number = Column(String(32), nullable=False, unique=True)
    issue_date = Column(DateTime, nullable=False, default=utc_now)

    subtotal = Column(Numeric(10, 2), nullable=False)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(10, 2), nullable=False)

    status = Column(
        SQLEnum(InvoiceStatus, name="invoice_status", native_enum=False, length=16),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    pdf_url = Column(String(1024), nullable=True)
    sent_at = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="invoice")

    __table_args__ = (
        CheckConstraint("total = subtotal + shipping_cost", name="total_matches_parts"),
    )

    def recalculate(self, subtotal: Any, shipping_cost: Any) -> None:
        """Set the amounts from the order's price/shipping; total is always derived."""
        self.subtotal = money(subtotal)
        self.shipping_cost = money(shipping_cost)
        self.total = money(self.subtotal + self.shipping_cost)

    def __repr__(self):
        return f"<Invoice {self.invoice_number} status={getattr(self.status, 'value', self.status)}>"


class InvoiceCounter(Base):
    __tablename__ = "invoice_counters"

    id = Column(String(32), primary_key=True, default=INVOICE_COUNTER_KEY)
    year = Column(Integer, nullable=False)
    counter = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


__all__ = [
    "Invoice",
    "InvoiceCounter",
    "InvoiceStatus",
    "INVOICE_COUNTER_KEY",
    "format_invoice_number",
]
