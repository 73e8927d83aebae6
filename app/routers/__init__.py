# app/routers/__init__.py
"""
API routers, mounted under settings.API_PREFIX by app.main.
"""

from __future__ import annotations

from fastapi import APIRouter

from app.routers import admin_auth, admin_orders, admin_stats, orders, upload, webhooks

api_router = APIRouter()
api_router.include_router(orders.router)
api_router.include_router(upload.router)
api_router.include_router(webhooks.router)
api_router.include_router(admin_auth.router)
api_router.include_router(admin_orders.router)
api_router.include_router(admin_stats.router)

__all__ = ["api_router"]
