"""
Admin API schemas: authentication, order listing and updates.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import EmailStr, Field, field_serializer

from app.models.order import OrderStatus
from app.schemas.base import BaseCreateSchema, BaseSchema, Pagination
from app.schemas.invoice import InvoiceResponse
from app.schemas.order import ModelVariantResponse, OrderResponse


class LoginRequest(BaseCreateSchema):
    email: EmailStr
    password: str = Field(..., min_length=6)


class AdminOut(BaseSchema):
    id: str
    email: str
    name: str


class LoginResponse(BaseSchema):
    token: str
    admin: AdminOut


class OrderListQuery(BaseCreateSchema):
    status: Optional[OrderStatus] = None
    search: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Literal["created_at", "updated_at", "order_number"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class OrderListItem(BaseSchema):
    id: str
    order_number: str
    status: OrderStatus
    customer_name: str
    customer_email: str
    customer_city: str
    price: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    variants_count: int

    @field_serializer("price")
    def _serialize_price(self, v: Optional[Decimal]) -> Optional[str]:
        return None if v is None else f"{v:.2f}"


class OrderListResponse(BaseSchema):
    orders: list[OrderListItem]
    pagination: Pagination


class OrderUpdate(BaseCreateSchema):
    """Schema for updating an order"""

    status: Optional[OrderStatus] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    tracking_number: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = None


class AdminOrderResponse(OrderResponse):
    shipping_address: Optional[dict[str, Any]] = None
    stripe_session_id: Optional[str] = None
    stripe_payment_id: Optional[str] = None
    invoice: Optional[InvoiceResponse] = None


class EmailSentResponse(BaseSchema):
    success: bool = True
    message: str


class VariantsCreatedResponse(BaseSchema):
    variants: list[ModelVariantResponse]


class StatusCount(BaseSchema):
    status: OrderStatus
    count: int


class AdminStatsResponse(BaseSchema):
    """Dashboard counters; revenue sums the price of orders paid this month."""

    orders_today: int
    orders_this_week: int
    orders_this_month: int
    revenue_this_month: Decimal
    pending_approval: int
    in_production: int
    orders_by_status: list[StatusCount]

    @field_serializer("revenue_this_month")
    def _serialize_revenue(self, v: Decimal) -> str:
        return f"{v:.2f}"
