# app/models/order.py
"""
Order / ModelVariant / Review: the customer request and what hangs off it.

Time:
- naive UTC (utc_now) and DateTime without timezone=True, like every model here.

Lifecycle timestamps (approved_at, paid_at, shipped_at, delivered_at) are only
written through app.services.order_state, never assigned directly by routers.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship, validates

from app.models.base import BaseModel, money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    MODELING = "MODELING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PAID = "PAID"
    PRINTING = "PRINTING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ShippingMethod(str, enum.Enum):
    PICKUP = "pickup"
    COURIER_CLUJ = "courier-cluj"
    COURIER_NATIONAL = "courier-national"


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------
class Order(BaseModel):
    __tablename__ = "orders"

    order_number = Column(String(32), nullable=False, unique=True)
    status = Column(
        SQLEnum(OrderStatus, name="order_status", native_enum=False, length=32),
        default=OrderStatus.RECEIVED,
        nullable=False,
        index=True,
    )

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(32), nullable=False)
    customer_city = Column(String(128), nullable=False)
    description = Column(Text, nullable=True)
    source_image_url = Column(String(1024), nullable=False)
    preferred_size = Column(String(64), nullable=True)
    preferred_color = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    selected_variant_id = Column(String(32), nullable=True)

    price = Column(Numeric(10, 2), nullable=True)
    shipping_method = Column(
        SQLEnum(
            ShippingMethod,
            name="shipping_method",
            native_enum=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
    )
    shipping_cost = Column(Numeric(10, 2), nullable=True)
    shipping_address = Column(JSON, nullable=True)
    tracking_number = Column(String(128), nullable=True)

    stripe_session_id = Column(String(255), nullable=True, index=True)
    stripe_payment_id = Column(String(255), nullable=True)

    subscribe_to_updates = Column(Boolean, nullable=False, default=True)

    approved_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    variants = relationship(
        "ModelVariant",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ModelVariant.created_at.asc()",
        lazy="selectin",
    )
    invoice = relationship("Invoice", back_populates="order", uselist=False, lazy="selectin")
    review = relationship(
        "Review",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("price IS NULL OR price >= 0", name="price_non_negative"),
        CheckConstraint("shipping_cost IS NULL OR shipping_cost >= 0", name="shipping_non_negative"),
        Index("ix_orders_status_created", "status", "created_at"),
    )

    # ------------------------ Validation ------------------------
    @validates("order_number")
    def _validate_order_number(self, _k: str, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("order_number must be non-empty")
        if self.order_number and self.order_number != v:
            raise ValueError("order_number is immutable")
        return v

    # ------------------------ Properties ------------------------
    @property
    def amount_due(self) -> Optional[Decimal]:
        if self.price is None:
            return None
        return money(money(self.price) + money(self.shipping_cost))

    def find_variant(self, variant_id: str) -> Optional["ModelVariant"]:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None

    def __repr__(self):
        return f"<Order {self.order_number} status={getattr(self.status, 'value', self.status)}>"


# ---------------------------------------------------------------------------
# ModelVariant
# ---------------------------------------------------------------------------
class ModelVariant(BaseModel):
    __tablename__ = "model_variants"

    order_id = Column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    preview_image_url = Column(String(1024), nullable=False)
    description = Column(Text, nullable=True)

    order = relationship("Order", back_populates="variants")


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------
class Review(BaseModel):
    __tablename__ = "reviews"

    order_id = Column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    photo_urls = Column(JSON, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="review")

    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="rating_range"),)


__all__ = ["OrderStatus", "ShippingMethod", "Order", "ModelVariant", "Review"]
