"""
Order queries shared by the public and admin routers.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.base import money, utc_now
from app.models.order import ModelVariant, Order, OrderStatus
from app.services.order_state import IN_PRODUCTION_STATUSES, TERMINAL_STATUSES

SORTABLE_COLUMNS = {
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
    "order_number": Order.order_number,
}


async def load_order(db: AsyncSession, order_id: str) -> Order:
    """Fetch an order with variants, invoice and review freshly loaded, or 404."""
    stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    order = (await db.execute(stmt)).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Comanda nu există", "not_found")
    return order


async def count_active_orders(db: AsyncSession) -> int:
    stmt = select(func.count(Order.id)).where(Order.status.not_in(list(TERMINAL_STATUSES)))
    return int((await db.execute(stmt)).scalar_one())


async def list_orders(
    db: AsyncSession,
    *,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[tuple[Order, int]], int]:
    """Return ([(order, variants_count)], total)."""
    filters = []
    if status is not None:
        filters.append(Order.status == status)
    if search:
        like = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(Order.customer_name).like(like),
                func.lower(Order.customer_email).like(like),
                func.lower(Order.order_number).like(like),
            )
        )

    total = int(
        (await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one()
    )

    variants_count = (
        select(func.count(ModelVariant.id))
        .where(ModelVariant.order_id == Order.id)
        .correlate(Order)
        .scalar_subquery()
    )
    column = SORTABLE_COLUMNS.get(sort_by, Order.created_at)
    direction = asc if sort_order == "asc" else desc
    stmt = (
        select(Order, variants_count.label("variants_count"))
        .where(*filters)
        .order_by(direction(column), direction(Order.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    return [(row[0], int(row[1])) for row in rows], total


def _period_starts(now: datetime) -> tuple[datetime, datetime, datetime]:
    """Start of today, of the current week (Monday) and of the current month."""
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return day, day - timedelta(days=day.weekday()), day.replace(day=1)


async def order_stats(db: AsyncSession, now: Optional[datetime] = None) -> dict[str, Any]:
    """Dashboard counters; periods are calendar-based in UTC."""
    day, week, month = _period_starts(now or utc_now())

    async def _count(*filters) -> int:
        return int((await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one())

    revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Order.price), 0)).where(
                Order.paid_at >= month, Order.price.is_not(None)
            )
        )
    ).scalar_one()

    by_status = (
        await db.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status).order_by(Order.status)
        )
    ).all()

    return {
        "orders_today": await _count(Order.created_at >= day),
        "orders_this_week": await _count(Order.created_at >= week),
        "orders_this_month": await _count(Order.created_at >= month),
        "revenue_this_month": money(Decimal(str(revenue))),
        "pending_approval": await _count(Order.status == OrderStatus.PENDING_APPROVAL),
        "in_production": await _count(Order.status.in_(IN_PRODUCTION_STATUSES)),
        "orders_by_status": [{"status": status, "count": int(count)} for status, count in by_status],
    }


__all__ = [
    "count_active_orders",
    "order_stats",
    "list_orders",
    "load_order",
]
