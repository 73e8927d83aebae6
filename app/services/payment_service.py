"""
Stripe Checkout integration over the REST API (httpx).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import PaymentProviderError, WebhookVerificationError
from app.core.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def encode_form(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form keys."""
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        full = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, full))
        elif isinstance(value, (list, tuple)):
            for idx, item in enumerate(value):
                item_key = f"{full}[{idx}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_key))
                else:
                    pairs.append((item_key, str(item)))
        elif isinstance(value, bool):
            pairs.append((full, "true" if value else "false"))
        else:
            pairs.append((full, str(value)))
    return pairs


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


class StripeService:
    """Service for Stripe Checkout"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        currency: Optional[str] = None,
        app_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY or ""
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET or ""
        self.base_url = (base_url or settings.STRIPE_API_URL).rstrip("/")
        self.currency = currency or settings.STRIPE_CURRENCY
        self.app_url = (app_url or settings.APP_URL).rstrip("/")
        self.timeout = timeout
        self.headers = {"Authorization": f"Bearer {self.api_key}"}

    async def _request(self, method: str, path: str, form: Optional[list] = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, f"{self.base_url}{path}", headers=self.headers, data=form
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            logger.error("stripe_request_failed", path=path, error=str(e), response=body)
            raise PaymentProviderError(f"Eroare la procesatorul de plati: {e}", "payment_failed") from e

    async def create_checkout_session(self, order: Any, total: Decimal) -> dict[str, Any]:
        order_url = f"{self.app_url}/comanda/{order.id}"
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": f"Comandă {order.order_number}",
                            "description": "Cadou personalizat 3D - Print3D.ro",
                        },
                        "unit_amount": to_minor_units(total),
                    },
                    "quantity": 1,
                }
            ],
            "metadata": {"order_id": order.id, "order_number": order.order_number},
            "customer_email": order.customer_email,
            "success_url": f"{order_url}/confirmare?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{order_url}/aprobare",
        }
        session = await self._request("POST", "/checkout/sessions", encode_form(params))
        logger.info("stripe_checkout_created", order_id=order.id, session_id=session.get("id"))
        return session

    async def retrieve_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/checkout/sessions/{session_id}")

    async def resolve_payment_status(self, order: Any) -> dict[str, Any]:
        """paid | pending | expired | failed, asking Stripe only when needed."""
        if order.paid_at:
            return {"status": "paid", "paid_at": order.paid_at}
        if not order.stripe_session_id:
            return {"status": "pending", "paid_at": None}
        try:
            session = await self.retrieve_session(order.stripe_session_id)
        except PaymentProviderError:
            return {"status": "failed", "paid_at": None}
        if session.get("payment_status") == "paid":
            return {"status": "paid", "paid_at": None}
        if session.get("status") == "expired":
            return {"status": "expired", "paid_at": None}
        return {"status": "pending", "paid_at": None}

    def construct_event(
        self,
        payload: bytes,
        signature_header: str,
        tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
        now: Optional[float] = None,
    ) -> dict[str, Any]:
        """Verify a Stripe-Signature header and decode the event."""
        timestamp: Optional[int] = None
        signatures: list[str] = []
        for item in (signature_header or "").split(","):
            key, _, value = item.strip().partition("=")
            if key == "t":
                try:
                    timestamp = int(value)
                except ValueError:
                    timestamp = None
            elif key == "v1":
                signatures.append(value)

        if timestamp is None or not signatures:
            raise WebhookVerificationError("Semnatura webhook invalida", "webhook_error")
        if not self.webhook_secret:
            raise WebhookVerificationError("Secretul webhook nu este configurat", "webhook_error")

        expected = compute_signature(payload, timestamp, self.webhook_secret)
        if not any(hmac.compare_digest(expected, s) for s in signatures):
            raise WebhookVerificationError("Semnatura webhook invalida", "webhook_error")

        current = time.time() if now is None else now
        if tolerance and timestamp < current - tolerance:
            raise WebhookVerificationError("Webhook expirat", "webhook_error")

        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookVerificationError("Payload webhook invalid", "webhook_error") from e


__all__ = [
    "StripeService",
    "compute_signature",
    "encode_form",
    "to_minor_units",
    "WEBHOOK_TOLERANCE_SECONDS",
]
