"""Database models package.

Single import point for every mapped class so that Base.metadata is complete
before init_db() runs create_all.
"""

from __future__ import annotations

from app.models.admin_user import AdminUser
from app.models.base import Base, BaseModel, money, new_id, utc_now
from app.models.company import COMPANY_SETTINGS_KEY, CompanySettings
from app.models.invoice import (
    INVOICE_COUNTER_KEY,
    Invoice,
    InvoiceCounter,
    InvoiceStatus,
    format_invoice_number,
)
from app.models.order import ModelVariant, Order, OrderStatus, Review, ShippingMethod

__all__ = [
    "Base",
    "BaseModel",
    "money",
    "new_id",
    "utc_now",
    "AdminUser",
    "CompanySettings",
    "COMPANY_SETTINGS_KEY",
    "Invoice",
    "InvoiceCounter",
    "InvoiceStatus",
    "INVOICE_COUNTER_KEY",
    "format_invoice_number",
    "Order",
    "OrderStatus",
    "ModelVariant",
    "Review",
    "ShippingMethod",
]
