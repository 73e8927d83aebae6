"""
Small formatting and validation helpers shared by routers and services.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from app.core.config import settings
from app.models.base import utc_now

ORDER_NUMBER_PREFIX = "P3D"
_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

VALID_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})

HOURS_PER_ORDER = 5
WORKING_HOURS_PER_DAY = 8

SHIPPING_PICKUP = Decimal("0")
SHIPPING_CLUJ = Decimal("15")
SHIPPING_DEFAULT = Decimal("25")


def generate_order_number(now: Optional[datetime] = None) -> str:
    """P3D-YYYYMMDD-XXXX with XXXX four random uppercase alphanumerics."""
    now = now or utc_now()
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(4))
    return f"{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"


def format_price(value: Any) -> Optional[str]:
    if value is None:
        return None
    return f"{Decimal(str(value)):.2f}"


def calculate_shipping_cost(method: Any, city: Optional[str] = None) -> Decimal:
    method = getattr(method, "value", method)
    if method == "pickup":
        return SHIPPING_PICKUP
    if method == "courier-cluj":
        return SHIPPING_CLUJ if city and "cluj" in city.lower() else SHIPPING_DEFAULT
    return SHIPPING_DEFAULT


def is_valid_image_type(mime_type: Optional[str]) -> bool:
    return (mime_type or "").lower() in VALID_IMAGE_TYPES


def is_valid_file_size(size: int) -> bool:
    return size <= settings.MAX_UPLOAD_SIZE


def estimate_delivery(active_orders: int) -> dict[str, Any]:
    hours = active_orders * HOURS_PER_ORDER
    days = (Decimal(hours) / Decimal(WORKING_HOURS_PER_DAY)).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )
    return {
        "active_orders": active_orders,
        "estimated_hours": hours,
        "estimated_days": float(days),
    }


__all__ = [
    "generate_order_number",
    "format_price",
    "calculate_shipping_cost",
    "is_valid_image_type",
    "is_valid_file_size",
    "estimate_delivery",
    "VALID_IMAGE_TYPES",
]
