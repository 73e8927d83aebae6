"""
Status-change notifier.

trigger_order_status_update() never blocks the caller and never raises: the
email is sent from a detached task (or a Celery worker when
NOTIFIER_BACKEND=celery) that only sees an OrderSnapshot, never the request's
database session.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, NamedTuple, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.models.order import OrderStatus

logger = get_logger(__name__)

REASON_STATUS_UNCHANGED = "status_unchanged"
REASON_NOT_SUBSCRIBED = "not_subscribed"

# strong references until each task finishes
_pending: set[asyncio.Task] = set()


@dataclass(frozen=True)
class OrderSnapshot:
    """The order fields a notification needs, copied out of the ORM object."""

    id: str
    order_number: str
    customer_name: str
    customer_email: str
    subscribe_to_updates: bool

    @classmethod
    def from_order(cls, order: Any) -> "OrderSnapshot":
        if isinstance(order, cls):
            return order
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            subscribe_to_updates=bool(order.subscribe_to_updates),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class NotificationResult(NamedTuple):
    sent: bool
    reason: Optional[str] = None


def _status(value: Any) -> OrderStatus:
    return value if isinstance(value, OrderStatus) else OrderStatus(value)


async def process_order_status_update(
    order: Any,
    old_status: Any,
    new_status: Any,
    email_service: Any,
) -> NotificationResult:
    old, new = _status(old_status), _status(new_status)
    if old == new:
        return NotificationResult(False, REASON_STATUS_UNCHANGED)
    if not order.subscribe_to_updates:
        return NotificationResult(False, REASON_NOT_SUBSCRIBED)

    try:
        await email_service.send_status_update(order, old, new)
    except Exception as e:
        logger.error(
            "status_update_email_failed",
            order_number=order.order_number,
            old_status=old.value,
            new_status=new.value,
            error=str(e),
        )
        raise
    logger.info(
        "status_update_email_sent",
        order_number=order.order_number,
        old_status=old.value,
        new_status=new.value,
    )
    return NotificationResult(True)


def spawn_background(coro: Awaitable[Any], *, label: str, **log_fields: Any) -> asyncio.Task:
    """Run a coroutine detached from the caller; failures are logged, not raised."""

    async def _runner() -> Any:
        try:
            return await coro
        except Exception as e:
            logger.error("background_task_failed", task=label, error=str(e), **log_fields)
            return None

    task = asyncio.create_task(_runner(), name=label)
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def trigger_order_status_update(
    order: Any,
    old_status: Any,
    new_status: Any,
    email_service: Any = None,
    *,
    backend: Optional[str] = None,
) -> Optional[asyncio.Task]:
    snapshot = OrderSnapshot.from_order(order)
    old, new = _status(old_status), _status(new_status)
    backend = backend or settings.NOTIFIER_BACKEND

    if backend == "celery":
        from app.services.background_tasks import notify_order_status_change

        try:
            notify_order_status_change.delay(snapshot.to_dict(), old.value, new.value)
        except Exception as e:
            logger.error(
                "status_update_enqueue_failed",
                order_number=snapshot.order_number,
                error=str(e),
            )
        return None

    if email_service is None:
        from app.services.email_service import EmailService

        email_service = EmailService()

    return spawn_background(
        process_order_status_update(snapshot, old, new, email_service),
        label="order_status_update",
        order_number=snapshot.order_number,
    )


async def wait_for_pending(timeout: Optional[float] = None) -> None:
    """Wait for detached tasks (shutdown hook and tests)."""
    if not _pending:
        return
    await asyncio.wait(set(_pending), timeout=timeout)


__all__ = [
    "NotificationResult",
    "OrderSnapshot",
    "REASON_NOT_SUBSCRIBED",
    "REASON_STATUS_UNCHANGED",
    "process_order_status_update",
    "spawn_background",
    "trigger_order_status_update",
    "wait_for_pending",
]
