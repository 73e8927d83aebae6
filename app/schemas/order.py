"""
Order Pydantic schemas (public API).
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import EmailStr, Field, HttpUrl, field_serializer

from app.models.order import OrderStatus, ShippingMethod
from app.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseSchema


class OrderCreate(BaseCreateSchema):
    """Schema for creating an order"""

    customer_name: str = Field(..., min_length=2, max_length=255)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=10, max_length=32)
    customer_city: str = Field(..., min_length=2, max_length=128)
    description: Optional[str] = None
    source_image_url: HttpUrl
    preferred_size: Optional[str] = Field(None, max_length=64)
    preferred_color: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None


class ModelVariantResponse(BaseResponseSchema):
    preview_image_url: str
    description: Optional[str] = None


class ReviewResponse(BaseResponseSchema):
    order_id: str
    rating: int
    comment: Optional[str] = None
    photo_urls: Optional[list[str]] = None
    is_public: bool


class OrderResponse(BaseResponseSchema):
    """Schema for order response"""

    order_number: str
    status: OrderStatus
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_city: str
    description: Optional[str] = None
    source_image_url: str
    preferred_size: Optional[str] = None
    preferred_color: Optional[str] = None
    notes: Optional[str] = None
    selected_variant_id: Optional[str] = None
    price: Optional[Decimal] = None
    shipping_method: Optional[ShippingMethod] = None
    shipping_cost: Optional[Decimal] = None
    tracking_number: Optional[str] = None
    subscribe_to_updates: bool
    updated_at: datetime
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    variants: list[ModelVariantResponse] = []
    review: Optional[ReviewResponse] = None

    @field_serializer("price", "shipping_cost")
    def _serialize_money(self, v: Optional[Decimal]) -> Optional[str]:
        return None if v is None else f"{v:.2f}"


class ShippingAddress(BaseCreateSchema):
    street: str = Field(..., min_length=3)
    city: str = Field(..., min_length=2)
    county: str = Field(..., min_length=2)
    postal_code: str = Field(..., min_length=5)
    notes: Optional[str] = None


class SelectVariantRequest(BaseCreateSchema):
    variant_id: str = Field(..., min_length=1)


class CheckoutRequest(BaseCreateSchema):
    shipping_address: ShippingAddress
    shipping_method: ShippingMethod


class CheckoutResponse(BaseSchema):
    checkout_url: str


class PaymentStatusResponse(BaseSchema):
    status: Literal["pending", "paid", "failed", "expired"]
    paid_at: Optional[datetime] = None


class ReviewCreate(BaseCreateSchema):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    photo_urls: Optional[list[HttpUrl]] = None

    def photo_url_strings(self) -> Optional[list[str]]:
        if self.photo_urls is None:
            return None
        return [str(u) for u in self.photo_urls]


class SubscriptionRequest(BaseCreateSchema):
    subscribe: bool


class SubscriptionResponse(BaseSchema):
    subscribe_to_updates: bool
    message: str


class DeliveryEstimation(BaseSchema):
    active_orders: int
    estimated_hours: int
    estimated_days: float


class UploadResponse(BaseSchema):
    url: str
    filename: str
    size: int
