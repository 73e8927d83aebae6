"""
Invoice Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import field_serializer

from app.models.invoice import InvoiceStatus
from app.schemas.base import BaseResponseSchema


class InvoiceResponse(BaseResponseSchema):
    order_id: str
    invoice_number: str
    issue_date: datetime
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal
    status: InvoiceStatus
    pdf_url: Optional[str] = None
    sent_at: Optional[datetime] = None
    updated_at: datetime

    @field_serializer("subtotal", "shipping_cost", "total")
    def _serialize_money(self, v: Decimal) -> str:
        return f"{v:.2f}"
