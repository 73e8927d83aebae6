# app/routers/admin_stats.py
"""
Admin dashboard statistics.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_current_admin
from app.schemas.admin import AdminStatsResponse
from app.services.order_repository import order_stats

router = APIRouter(
    prefix="/admin/stats",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=AdminStatsResponse)
async def get_stats(db: AsyncSession = Depends(get_db)):
    return await order_stats(db)
