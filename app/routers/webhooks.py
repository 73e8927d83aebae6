# app/routers/webhooks.py
"""
Stripe webhook receiver.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_email_service, get_payment_service
from app.core.exceptions import InvalidStatusError, NotFoundError, WebhookVerificationError
from app.core.logging import get_logger
from app.services.email_service import EmailService
from app.services.notifier import spawn_background, trigger_order_status_update
from app.services.order_repository import load_order
from app.services.order_state import mark_paid
from app.services.payment_service import StripeService

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

EVENT_COMPLETED = "checkout.session.completed"
EVENT_EXPIRED = "checkout.session.expired"


async def _handle_completed(
    db: AsyncSession, session: dict[str, Any], email_service: EmailService
) -> None:
    order_id = (session.get("metadata") or {}).get("order_id")
    if not order_id:
        logger.warning("stripe_session_without_order", session_id=session.get("id"))
        return

    try:
        order = await load_order(db, order_id)
        transition = mark_paid(order, session.get("payment_intent"))
    except (NotFoundError, InvalidStatusError) as e:
        logger.warning(
            "stripe_payment_not_applied",
            order_id=order_id,
            session_id=session.get("id"),
            reason=e.message,
        )
        return

    await db.commit()
    order = await load_order(db, order_id)
    logger.info("order_paid", order_id=order.id, order_number=order.order_number)

    if not transition.changed:
        return
    spawn_background(
        email_service.send_payment_confirmed(order),
        label="payment_confirmed_email",
        order_number=order.order_number,
    )
    trigger_order_status_update(order, transition.old_status, transition.new_status, email_service)


async def _handle_expired(db: AsyncSession, session: dict[str, Any]) -> None:
    order_id = (session.get("metadata") or {}).get("order_id")
    if not order_id:
        return
    try:
        order = await load_order(db, order_id)
    except NotFoundError:
        logger.warning("stripe_expired_unknown_order", order_id=order_id)
        return
    if order.stripe_session_id == session.get("id"):
        order.stripe_session_id = None
        await db.commit()
    logger.info("stripe_session_expired", order_id=order_id, session_id=session.get("id"))


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    payments: StripeService = Depends(get_payment_service),
    email_service: EmailService = Depends(get_email_service),
):
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise WebhookVerificationError("Lipsește semnătura Stripe", "missing_signature")

    payload = await request.body()
    event = payments.construct_event(payload, signature)
    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}

    if event_type == EVENT_COMPLETED:
        await _handle_completed(db, session, email_service)
    elif event_type == EVENT_EXPIRED:
        await _handle_expired(db, session)
    else:
        logger.info("stripe_event_ignored", event_type=event_type, event_id=event.get("id"))

    return {"received": True}
