"""
Email service for customer notifications and invoices.

SMTP via smtplib in a worker thread; bodies rendered from jinja2 templates in
app/templates/email. Every failure surfaces as EmailDeliveryError.
"""

from __future__ import annotations

import asyncio
import os
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings
from app.core.exceptions import EmailDeliveryError
from app.core.logging import get_logger
from app.models.base import money
from app.services.order_state import status_label

logger = get_logger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "..", "templates", "email")


@dataclass
class Attachment:
    filename: str
    content: bytes
    mime_subtype: str = "pdf"


def invoice_attachment(invoice: Any, pdf_bytes: bytes) -> Attachment:
    return Attachment(filename=f"Factura-{invoice.invoice_number}.pdf", content=pdf_bytes)


class EmailService:
    """Service for sending emails"""

    def __init__(self, smtp: Optional[dict[str, Any]] = None, app_url: Optional[str] = None):
        self.smtp = smtp or settings.smtp_settings
        self.app_url = (app_url or settings.APP_URL).rstrip("/")
        self.jinja_env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(["html"]),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["From"] = formataddr((self.smtp["from_name"], self.smtp["from_email"]))
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        for att in attachments or []:
            part = MIMEApplication(att.content, _subtype=att.mime_subtype)
            part.add_header("Content-Disposition", "attachment", filename=att.filename)
            msg.attach(part)
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        cfg = self.smtp
        smtp_cls = smtplib.SMTP_SSL if cfg["ssl"] else smtplib.SMTP
        with smtp_cls(cfg["host"], cfg["port"], timeout=30) as server:
            if cfg["tls"]:
                server.starttls()
            if cfg["user"]:
                server.login(cfg["user"], cfg["password"])
            server.send_message(msg)

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> None:
        msg = self._build_message(to, subject, html_body, attachments)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            raise EmailDeliveryError(f"Trimiterea emailului a esuat: {e}", "email_failed") from e
        logger.info("email_sent", to=to, subject=subject)

    def render(self, template: str, **context: Any) -> str:
        return self.jinja_env.get_template(template).render(**context)

    def order_url(self, order: Any) -> str:
        return f"{self.app_url}/comanda/{order.id}"

    # ------------------------------------------------------------------
    # Customer emails
    # ------------------------------------------------------------------
    async def send_order_received(self, order: Any) -> None:
        html = self.render("order_received.html", order=order, order_url=self.order_url(order))
        await self.send(order.customer_email, f"Comandă primită - {order.order_number}", html)

    async def send_variants_ready(self, order: Any) -> None:
        html = self.render(
            "variants_ready.html",
            order=order,
            price=None if order.price is None else money(order.price),
            order_url=self.order_url(order),
        )
        await self.send(order.customer_email, f"Variantele sunt gata! - {order.order_number}", html)

    async def send_payment_confirmed(self, order: Any) -> None:
        html = self.render("payment_confirmed.html", order=order, total=order.amount_due)
        await self.send(order.customer_email, f"Plată confirmată - {order.order_number}", html)

    async def send_shipping(
        self,
        order: Any,
        invoice: Any = None,
        invoice_pdf: Optional[bytes] = None,
    ) -> None:
        attachments = None
        if invoice is not None and invoice_pdf is not None:
            attachments = [invoice_attachment(invoice, invoice_pdf)]
        else:
            invoice = None
        html = self.render("shipped.html", order=order, invoice=invoice)
        await self.send(
            order.customer_email,
            f"Comanda ta a fost expediată! - {order.order_number}",
            html,
            attachments,
        )

    async def send_review_request(self, order: Any) -> None:
        html = self.render("review_request.html", order=order, order_url=self.order_url(order))
        await self.send(order.customer_email, f"Cum ți s-a părut? - {order.order_number}", html)

    async def send_status_update(self, order: Any, old_status: Any, new_status: Any) -> None:
        html = self.render(
            "status_update.html",
            order=order,
            old_label=status_label(old_status),
            new_label=status_label(new_status),
            order_url=self.order_url(order),
        )
        await self.send(order.customer_email, f"Status comandă actualizat - {order.order_number}", html)

    async def send_invoice(self, order: Any, invoice: Any, invoice_pdf: bytes) -> None:
        html = self.render("invoice.html", order=order, invoice=invoice, total=money(invoice.total))
        await self.send(
            order.customer_email,
            f"Factura {invoice.invoice_number} - {order.order_number}",
            html,
            [invoice_attachment(invoice, invoice_pdf)],
        )


__all__ = ["EmailService", "Attachment", "invoice_attachment"]
