# app/models/admin_user.py
"""Staff accounts allowed into /api/admin."""

from __future__ import annotations

from sqlalchemy import Column, String
from sqlalchemy.orm import validates

from app.models.base import BaseModel


class AdminUser(BaseModel):
    __tablename__ = "admin_users"

    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)

    @validates("email")
    def _normalize_email(self, _k: str, v: str) -> str:
        return (v or "").strip().lower()

    def to_public_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


__all__ = ["AdminUser"]
