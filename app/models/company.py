# app/models/company.py
"""
CompanySettings: seller data printed on invoices.

Single row keyed "default". When the row is missing the invoice service falls
back to the COMPANY_* settings (see Settings.company_defaults).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Column, String, Text

from app.models.base import BaseModel

COMPANY_SETTINGS_KEY = "default"

_SELLER_FIELDS = (
    "name",
    "cui",
    "reg_com",
    "address",
    "city",
    "county",
    "postal_code",
    "country",
    "bank_name",
    "iban",
    "capital_social",
    "email",
    "phone",
)


class CompanySettings(BaseModel):
    __tablename__ = "company_settings"

    id = Column(String(32), primary_key=True, default=COMPANY_SETTINGS_KEY)

    name = Column(String(255), nullable=False)
    cui = Column(String(32), nullable=False)
    reg_com = Column(String(64), nullable=True)
    address = Column(Text, nullable=False)
    city = Column(String(128), nullable=False)
    county = Column(String(128), nullable=True)
    postal_code = Column(String(16), nullable=True)
    country = Column(String(64), nullable=False, default="Romania")
    bank_name = Column(String(128), nullable=True)
    iban = Column(String(64), nullable=True)
    capital_social = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)

    def as_seller(self) -> dict[str, Any]:
        return {f: getattr(self, f) for f in _SELLER_FIELDS}


__all__ = ["CompanySettings", "COMPANY_SETTINGS_KEY"]
