"""
Order lifecycle state machine.

plan_transition() is a pure function: it validates a status change and returns
the side effects to apply (timestamp stamping, auto-invoice, notification).
apply_transition() mutates the order accordingly. Routers never assign
Order.status or the lifecycle timestamps directly.

CANCELLED and DELIVERED are terminal. Setting the current status again is a
no-op, never an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from app.core.exceptions import ConflictError, InvalidStatusError, NotFoundError, PreconditionError
from app.core.logging import get_logger
from app.models.base import utc_now
from app.models.order import ModelVariant, Order, OrderStatus

logger = get_logger(__name__)

STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.RECEIVED: "Primită",
    OrderStatus.MODELING: "În modelare",
    OrderStatus.PENDING_APPROVAL: "Așteaptă aprobare",
    OrderStatus.APPROVED: "Aprobată",
    OrderStatus.PAID: "Plătită",
    OrderStatus.PRINTING: "În printare",
    OrderStatus.SHIPPED: "Expediată",
    OrderStatus.DELIVERED: "Livrată",
    OrderStatus.CANCELLED: "Anulată",
}

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.DELIVERED})

IN_PRODUCTION_STATUSES = (OrderStatus.APPROVED, OrderStatus.PAID, OrderStatus.PRINTING)

_PAID_OR_LATER = frozenset({OrderStatus.PAID, OrderStatus.PRINTING, OrderStatus.SHIPPED})

# status -> lifecycle timestamp stamped on first entry
_STAMPED_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.APPROVED: "approved_at",
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
}


def status_label(status: OrderStatus | str) -> str:
    try:
        return STATUS_LABELS[OrderStatus(status)]
    except ValueError:
        return str(status)


@dataclass(frozen=True)
class StatusTransition:
    """Outcome of plan_transition()."""

    old_status: OrderStatus
    new_status: OrderStatus
    stamps: dict[str, datetime] = field(default_factory=dict)
    generate_invoice: bool = False

    @property
    def changed(self) -> bool:
        return self.old_status != self.new_status

    @property
    def notify(self) -> bool:
        return self.changed


def plan_transition(
    order: Order,
    new_status: OrderStatus | str,
    now: Optional[datetime] = None,
) -> StatusTransition:
    old = OrderStatus(order.status)
    try:
        new = OrderStatus(new_status)
    except ValueError as e:
        raise InvalidStatusError(f"Status necunoscut: {new_status}", target=new_status) from e

    if new == old:
        return StatusTransition(old_status=old, new_status=new)

    if old in TERMINAL_STATUSES:
        raise InvalidStatusError(
            f"Comanda este {status_label(old)} si nu mai poate fi modificata",
            current=old,
            target=new,
        )

    now = now or utc_now()
    stamps: dict[str, datetime] = {}
    stamp_field = _STAMPED_FIELDS.get(new)
    if stamp_field and getattr(order, stamp_field) is None:
        stamps[stamp_field] = now

    return StatusTransition(
        old_status=old,
        new_status=new,
        stamps=stamps,
        generate_invoice=new == OrderStatus.SHIPPED,
    )


def apply_transition(order: Order, transition: StatusTransition) -> StatusTransition:
    if not transition.changed:
        return transition
    order.status = transition.new_status
    for name, value in transition.stamps.items():
        setattr(order, name, value)
    logger.info(
        "order_status_changed",
        order_id=order.id,
        order_number=order.order_number,
        old_status=transition.old_status.value,
        new_status=transition.new_status.value,
    )
    return transition


def change_status(
    order: Order,
    new_status: OrderStatus | str,
    now: Optional[datetime] = None,
) -> StatusTransition:
    return apply_transition(order, plan_transition(order, new_status, now))


def register_variant_upload(order: Order, now: Optional[datetime] = None) -> StatusTransition:
    """First variant batch moves RECEIVED/MODELING orders to PENDING_APPROVAL."""
    if order.status in (OrderStatus.RECEIVED, OrderStatus.MODELING):
        return change_status(order, OrderStatus.PENDING_APPROVAL, now)
    current = OrderStatus(order.status)
    return StatusTransition(old_status=current, new_status=current)


def select_variant(
    order: Order,
    variant_id: str,
    variants: Optional[Iterable[ModelVariant]] = None,
    now: Optional[datetime] = None,
) -> StatusTransition:
    if order.status != OrderStatus.PENDING_APPROVAL:
        raise InvalidStatusError(
            "Comanda nu este în așteptare pentru aprobare",
            current=order.status,
            target=OrderStatus.APPROVED,
        )
    pool = order.variants if variants is None else variants
    if not any(v.id == variant_id for v in pool):
        raise NotFoundError("Varianta nu există", "not_found")

    transition = plan_transition(order, OrderStatus.APPROVED, now)
    order.selected_variant_id = variant_id
    return apply_transition(order, transition)


def ensure_checkout_allowed(order: Order) -> None:
    if order.status != OrderStatus.APPROVED:
        raise InvalidStatusError(
            "Comanda nu este aprobată pentru plată",
            current=order.status,
            target=OrderStatus.PAID,
        )
    if order.price is None:
        raise PreconditionError("Prețul comenzii nu a fost stabilit", "no_price")


def ensure_review_allowed(order: Order) -> None:
    if order.status != OrderStatus.DELIVERED:
        raise InvalidStatusError(
            "Review-ul poate fi trimis doar pentru comenzi livrate",
            current=order.status,
        )
    if order.review is not None:
        raise ConflictError(
            "Ai trimis deja un review pentru această comandă",
            "already_reviewed",
            http_status=400,
        )


def mark_paid(
    order: Order,
    payment_reference: Optional[str],
    now: Optional[datetime] = None,
) -> StatusTransition:
    """Move to PAID; a repeated or late payment confirmation never moves the order back."""
    current = OrderStatus(order.status)
    if order.paid_at is not None or current in _PAID_OR_LATER:
        logger.info(
            "order_already_paid",
            order_id=order.id,
            order_number=order.order_number,
            status=current.value,
        )
        return StatusTransition(old_status=current, new_status=current)
    transition = change_status(order, OrderStatus.PAID, now)
    if payment_reference:
        order.stripe_payment_id = payment_reference
    return transition


__all__ = [
    "STATUS_LABELS",
    "TERMINAL_STATUSES",
    "IN_PRODUCTION_STATUSES",
    "StatusTransition",
    "plan_transition",
    "apply_transition",
    "change_status",
    "register_variant_upload",
    "select_variant",
    "ensure_checkout_allowed",
    "ensure_review_allowed",
    "mark_paid",
    "status_label",
]
