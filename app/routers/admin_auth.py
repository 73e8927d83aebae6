# app/routers/admin_auth.py
"""
Admin authentication: email/password login issuing a Bearer JWT.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_client_info, get_current_admin
from app.core.exceptions import AuthenticationError
from app.core.logging import audit_logger
from app.core.security import create_access_token, verify_password
from app.models.admin_user import AdminUser
from app.schemas.admin import AdminOut, LoginRequest, LoginResponse

router = APIRouter(prefix="/admin/auth", tags=["admin"])

INVALID_CREDENTIALS = "Email sau parolă incorectă"


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    client = get_client_info(request)
    email = payload.email.lower()

    admin = (
        await db.execute(select(AdminUser).where(AdminUser.email == email))
    ).scalar_one_or_none()
    if admin is None or not verify_password(payload.password, admin.password_hash):
        audit_logger.log_auth_failure(
            email,
            client["ip_address"],
            "unknown_admin" if admin is None else "wrong_password",
        )
        raise AuthenticationError(INVALID_CREDENTIALS, "invalid_credentials")

    token = create_access_token(admin.id, email=admin.email, name=admin.name)
    audit_logger.log_auth_success(admin.id, admin.email, client["ip_address"])
    return LoginResponse(token=token, admin=admin.to_public_dict())


@router.get("/me", response_model=AdminOut)
async def me(admin: AdminUser = Depends(get_current_admin)):
    return admin
