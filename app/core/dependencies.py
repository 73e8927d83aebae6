# app/core/dependencies.py
"""
FastAPI dependencies:
- Admin authentication (Bearer JWT -> AdminUser)
- Client context (ip, user agent, request id)
- Collaborator providers (storage, email, PDF, payments, invoices); tests swap
  them through app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.exceptions import AuthenticationError
from app.core.logging import bind_context, get_logger
from app.core.security import decode_access_token
from app.models.admin_user import AdminUser
from app.services.email_service import EmailService
from app.services.invoice_service import InvoiceService
from app.services.payment_service import StripeService
from app.services.storage_service import StorageService
from app.utils.pdf import InvoicePDFGenerator

logger = get_logger(__name__)


# ------------------------------------------------------------------------------
# Client info
# ------------------------------------------------------------------------------
def get_client_info(request: Request) -> dict:
    forwarded = request.headers.get("x-forwarded-for", "")
    return {
        "ip_address": (
            request.headers.get("x-real-ip")
            or forwarded.split(",")[0].strip()
            or (request.client.host if request.client else "")
        ),
        "user_agent": request.headers.get("user-agent", "unknown"),
        "request_id": request.headers.get("x-request-id", ""),
    }


# ------------------------------------------------------------------------------
# Authentication
# ------------------------------------------------------------------------------
security = HTTPBearer(auto_error=False)


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AdminUser:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Autentificare necesară", "unauthorized")

    payload = decode_access_token(credentials.credentials)
    admin = await db.get(AdminUser, payload["sub"])
    if admin is None:
        raise AuthenticationError("Utilizator inexistent", "unauthorized")

    bind_context(admin_id=admin.id)
    logger.debug("admin_authenticated", email=admin.email, path=request.url.path)
    return admin


# ------------------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------------------
@lru_cache
def get_storage_service() -> StorageService:
    return StorageService()


@lru_cache
def get_email_service() -> EmailService:
    return EmailService()


@lru_cache
def get_pdf_generator() -> InvoicePDFGenerator:
    return InvoicePDFGenerator()


@lru_cache
def get_payment_service() -> StripeService:
    return StripeService()


def get_invoice_service(
    db: AsyncSession = Depends(get_db),
    pdf_generator: InvoicePDFGenerator = Depends(get_pdf_generator),
    storage: StorageService = Depends(get_storage_service),
) -> InvoiceService:
    return InvoiceService(db, pdf_generator, storage)


__all__ = [
    "get_client_info",
    "get_current_admin",
    "get_storage_service",
    "get_email_service",
    "get_pdf_generator",
    "get_payment_service",
    "get_invoice_service",
    "security",
]
