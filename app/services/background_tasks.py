"""
Background task services using Celery for async operations.
"""

import asyncio

from celery import Celery

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Initialize Celery
celery_app = Celery(
    "print3d",
    broker=settings.celery_settings["broker_url"],
    backend=settings.celery_settings["result_backend"],
    include=["app.services.background_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
)


@celery_app.task(name="print3d.notify_order_status_change")
def notify_order_status_change(order: dict, old_status: str, new_status: str) -> dict:
    """Send the status-update email for a snapshot of an order."""
    from app.services.email_service import EmailService
    from app.services.notifier import OrderSnapshot, process_order_status_update

    snapshot = OrderSnapshot(**order)
    result = asyncio.run(
        process_order_status_update(snapshot, old_status, new_status, EmailService())
    )
    logger.info(
        "status_update_task_done",
        order_number=snapshot.order_number,
        sent=result.sent,
        reason=result.reason,
    )
    return result._asdict()
