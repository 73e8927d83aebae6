# app/routers/orders.py
"""
Public order endpoints: placement, variant approval, checkout, payment status,
reviews and update subscriptions.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_email_service, get_payment_service
from app.core.logging import get_logger
from app.models.order import Order, OrderStatus, Review
from app.schemas.order import (
    CheckoutRequest,
    CheckoutResponse,
    DeliveryEstimation,
    OrderCreate,
    OrderResponse,
    PaymentStatusResponse,
    ReviewCreate,
    ReviewResponse,
    SelectVariantRequest,
    SubscriptionRequest,
    SubscriptionResponse,
)
from app.services.email_service import EmailService
from app.services.notifier import spawn_background, trigger_order_status_update
from app.services.order_repository import count_active_orders, load_order
from app.services.order_state import ensure_checkout_allowed, ensure_review_allowed, select_variant
from app.services.payment_service import StripeService
from app.utils.helpers import calculate_shipping_cost, estimate_delivery, generate_order_number

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

SUBSCRIBED_MESSAGE = "Te-ai abonat la actualizări pentru această comandă"
UNSUBSCRIBED_MESSAGE = "Te-ai dezabonat de la actualizări pentru această comandă"


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    data = payload.model_dump()
    data["source_image_url"] = str(payload.source_image_url)
    order = Order(
        order_number=generate_order_number(),
        status=OrderStatus.RECEIVED,
        subscribe_to_updates=True,
        **data,
    )
    db.add(order)
    await db.commit()

    order = await load_order(db, order.id)
    logger.info("order_created", order_id=order.id, order_number=order.order_number)

    spawn_background(
        email_service.send_order_received(order),
        label="order_received_email",
        order_number=order.order_number,
    )
    return order


# declared before /{order_id} so the literal path wins
@router.get("/delivery-estimation", response_model=DeliveryEstimation)
async def get_delivery_estimation(db: AsyncSession = Depends(get_db)):
    return estimate_delivery(await count_active_orders(db))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await load_order(db, order_id)


@router.post("/{order_id}/select-variant", response_model=OrderResponse)
async def choose_variant(
    order_id: str,
    payload: SelectVariantRequest,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    order = await load_order(db, order_id)
    transition = select_variant(order, payload.variant_id)
    await db.commit()

    order = await load_order(db, order_id)
    if transition.notify:
        trigger_order_status_update(
            order, transition.old_status, transition.new_status, email_service
        )
    return order


@router.post("/{order_id}/checkout", response_model=CheckoutResponse)
async def checkout(
    order_id: str,
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    payments: StripeService = Depends(get_payment_service),
):
    order = await load_order(db, order_id)
    ensure_checkout_allowed(order)

    address = payload.shipping_address.model_dump()
    order.shipping_address = address
    order.shipping_method = payload.shipping_method
    order.shipping_cost = calculate_shipping_cost(payload.shipping_method, address["city"])
    await db.commit()

    session = await payments.create_checkout_session(order, order.amount_due)
    order.stripe_session_id = session["id"]
    await db.commit()

    logger.info(
        "checkout_started",
        order_id=order.id,
        total=str(order.amount_due),
        shipping_method=payload.shipping_method.value,
    )
    return CheckoutResponse(checkout_url=session["url"])


@router.get("/{order_id}/payment-status", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    payments: StripeService = Depends(get_payment_service),
):
    order = await load_order(db, order_id)
    return await payments.resolve_payment_status(order)


@router.post(
    "/{order_id}/review",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    order_id: str,
    payload: ReviewCreate,
    db: AsyncSession = Depends(get_db),
):
    order = await load_order(db, order_id)
    ensure_review_allowed(order)

    review = Review(
        order_id=order.id,
        rating=payload.rating,
        comment=payload.comment,
        photo_urls=payload.photo_url_strings(),
        is_public=False,
    )
    db.add(review)
    await db.commit()
    await db.refresh(review)
    logger.info("review_created", order_id=order.id, rating=review.rating)
    return review


@router.post("/{order_id}/subscription", response_model=SubscriptionResponse)
async def update_subscription(
    order_id: str,
    payload: SubscriptionRequest,
    db: AsyncSession = Depends(get_db),
):
    order = await load_order(db, order_id)
    order.subscribe_to_updates = payload.subscribe
    await db.commit()
    return SubscriptionResponse(
        subscribe_to_updates=payload.subscribe,
        message=SUBSCRIBED_MESSAGE if payload.subscribe else UNSUBSCRIBED_MESSAGE,
    )
