"""
Invoice numbering and generation.

allocate_invoice_number() is the only writer of the invoice_counters row. It
runs a single UPDATE ... RETURNING so the database row lock serializes
concurrent allocators, then commits immediately: a number handed out is never
given back, even if the invoice it was meant for fails later (gaps accepted).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    InvoiceGenerationError,
    NotFoundError,
    PreconditionError,
    StorageError,
)
from app.core.logging import get_logger
from app.models.base import money, utc_now
from app.models.company import COMPANY_SETTINGS_KEY, CompanySettings
from app.models.invoice import (
    INVOICE_COUNTER_KEY,
    Invoice,
    InvoiceCounter,
    InvoiceStatus,
    format_invoice_number,
)
from app.models.order import Order
from app.services.storage_service import FOLDER_INVOICES
from app.utils.pdf import InvoiceDocument, LineItem, PartyInfo

logger = get_logger(__name__)

DEFAULT_LINE_DESCRIPTION = "Serviciu printare 3D personalizata"
DEFAULT_SHIPPING_LABEL = "Curier"
DEFAULT_COUNTRY = "Romania"
PDF_CONTENT_TYPE = "application/pdf"

_MAX_ALLOCATION_ATTEMPTS = 3


# ---------------------------------------------------------------------------
# Allocator
# ---------------------------------------------------------------------------
async def allocate_invoice_number(session: AsyncSession, year: Optional[int] = None) -> str:
    year = year or utc_now().year

    stmt = (
        update(InvoiceCounter)
        .where(InvoiceCounter.id == INVOICE_COUNTER_KEY)
        .values(
            counter=case((InvoiceCounter.year == year, InvoiceCounter.counter + 1), else_=1),
            year=year,
        )
        .returning(InvoiceCounter.year, InvoiceCounter.counter)
        .execution_options(synchronize_session=False)
    )

    for _ in range(_MAX_ALLOCATION_ATTEMPTS):
        row = (await session.execute(stmt)).one_or_none()
        if row is not None:
            allocated_year, counter = row
            break
        try:
            async with session.begin_nested():
                session.add(InvoiceCounter(id=INVOICE_COUNTER_KEY, year=year, counter=1))
        except IntegrityError:
            # another allocator created the row first; take the UPDATE path
            continue
        allocated_year, counter = year, 1
        break
    else:
        await session.rollback()
        raise InvoiceGenerationError("Nu s-a putut aloca numarul facturii", "generation_failed")

    await session.commit()
    number = format_invoice_number(allocated_year, counter)
    logger.info("invoice_number_allocated", invoice_number=number)
    return number


# ---------------------------------------------------------------------------
# Document assembly
# ---------------------------------------------------------------------------
def _join(*parts: Optional[str]) -> str:
    return ", ".join(p for p in parts if p)


def build_seller(company: dict[str, Any]) -> PartyInfo:
    return PartyInfo(
        name=company.get("name") or "",
        lines=[
            f"CUI: {company.get('cui') or ''}",
            f"Reg. Com.: {company.get('reg_com') or ''}",
            company.get("address") or "",
            _join(company.get("city"), company.get("county")),
            company.get("postal_code") or "",
            f"IBAN: {company.get('iban') or ''}",
            company.get("bank_name") or "",
        ],
    )


def build_buyer(order: Order) -> PartyInfo:
    addr = order.shipping_address or {}
    return PartyInfo(
        name=order.customer_name,
        lines=[
            addr.get("street") or "",
            _join(addr.get("city") or order.customer_city, addr.get("county")),
            addr.get("postal_code") or "",
            addr.get("country") or DEFAULT_COUNTRY,
            order.customer_email,
            order.customer_phone,
        ],
    )


def build_line_items(order: Order) -> list[LineItem]:
    price = money(order.price)
    items = [
        LineItem(
            description=order.description or DEFAULT_LINE_DESCRIPTION,
            quantity=1,
            unit_price=price,
            total=price,
        )
    ]
    shipping = money(order.shipping_cost)
    if shipping > 0:
        method = getattr(order.shipping_method, "value", order.shipping_method)
        items.append(
            LineItem(
                description=f"Transport - {method or DEFAULT_SHIPPING_LABEL}",
                quantity=1,
                unit_price=shipping,
                total=shipping,
            )
        )
    return items


def build_invoice_document(order: Order, invoice: Invoice, company: dict[str, Any]) -> InvoiceDocument:
    issue_date: datetime = invoice.issue_date or utc_now()
    return InvoiceDocument(
        invoice_number=invoice.invoice_number,
        issue_date=issue_date,
        order_number=order.order_number,
        seller=build_seller(company),
        buyer=build_buyer(order),
        line_items=build_line_items(order),
        subtotal=money(invoice.subtotal),
        shipping=money(invoice.shipping_cost),
        total=money(invoice.total),
        footer_lines=[
            f"Capital social: {company.get('capital_social') or ''}",
            f"Email: {company.get('email') or ''} | Tel: {company.get('phone') or ''}",
        ],
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class InvoiceService:
    """Creates, regenerates and tracks invoices.

    Collaborators:
        pdf_generator: object with ``async render_invoice(InvoiceDocument) -> bytes``
        storage: object with ``async put(data, filename, folder, content_type) -> url``
            and ``async delete(url)``
    """

    def __init__(self, session: AsyncSession, pdf_generator: Any, storage: Any):
        self.session = session
        self.pdf_generator = pdf_generator
        self.storage = storage

    # ---------------------------- lookups ----------------------------
    async def _get_order(self, order_id: str) -> Order:
        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Comanda nu există", "not_found")
        return order

    async def _get_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Factura nu există", "no_invoice")
        return invoice

    async def get_invoice_by_order_id(self, order_id: str) -> Optional[Invoice]:
        res = await self.session.execute(select(Invoice).where(Invoice.order_id == order_id))
        return res.scalar_one_or_none()

    async def get_company_info(self) -> dict[str, Any]:
        row = await self.session.get(CompanySettings, COMPANY_SETTINGS_KEY)
        if row is None:
            return dict(settings.company_defaults)
        return row.as_seller()

    async def _render_and_store(self, order: Order, invoice: Invoice) -> str:
        company = await self.get_company_info()
        pdf = await self.pdf_generator.render_invoice(build_invoice_document(order, invoice, company))
        return await self.storage.put(
            pdf, f"{invoice.invoice_number}.pdf", FOLDER_INVOICES, PDF_CONTENT_TYPE
        )

    # ---------------------------- operations ----------------------------
    async def create_invoice(self, order_id: str) -> Invoice:
        order = await self._get_order(order_id)
        if await self.get_invoice_by_order_id(order_id) is not None:
            raise ConflictError(
                f"Factura există deja pentru comanda {order.order_number}",
                "invoice_exists",
                http_status=400,
            )
        if order.price is None:
            raise PreconditionError("Prețul comenzii nu a fost stabilit", "no_price")

        number = await allocate_invoice_number(self.session)

        invoice = Invoice(
            order_id=order.id,
            invoice_number=number,
            issue_date=utc_now(),
            status=InvoiceStatus.DRAFT,
        )
        invoice.recalculate(order.price, order.shipping_cost)
        self.session.add(invoice)
        await self.session.commit()
        invoice_pk, order_pk = invoice.id, order.id

        try:
            invoice.pdf_url = await self._render_and_store(order, invoice)
            invoice.status = InvoiceStatus.GENERATED
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            self.session.expunge(invoice)
            await self.session.execute(
                delete(Invoice)
                .where(Invoice.id == invoice_pk)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            logger.error(
                "invoice_generation_failed",
                order_id=order_pk,
                invoice_number=number,
                error=str(e),
            )
            if isinstance(e, InvoiceGenerationError):
                raise
            raise InvoiceGenerationError(
                f"Generarea facturii a esuat: {e}", "generation_failed"
            ) from e

        logger.info(
            "invoice_generated",
            order_id=order.id,
            order_number=order.order_number,
            invoice_number=number,
            total=str(invoice.total),
        )
        return invoice

    async def regenerate_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self._get_invoice(invoice_id)
        order = await self._get_order(invoice.order_id)

        # the old PDF is gone before rendering; a render failure leaves pdf_url dangling until the next regenerate
        if invoice.pdf_url:
            try:
                await self.storage.delete(invoice.pdf_url)
            except StorageError as e:
                logger.warning(
                    "invoice_old_pdf_delete_failed",
                    invoice_number=invoice.invoice_number,
                    error=str(e),
                )

        number = invoice.invoice_number
        invoice.recalculate(order.price, order.shipping_cost)
        try:
            invoice.pdf_url = await self._render_and_store(order, invoice)
        except Exception as e:
            await self.session.rollback()
            logger.error("invoice_regeneration_failed", invoice_number=number, error=str(e))
            raise InvoiceGenerationError(
                f"Regenerarea facturii a esuat: {e}", "regeneration_failed"
            ) from e
        invoice.status = InvoiceStatus.GENERATED
        await self.session.commit()

        logger.info(
            "invoice_regenerated",
            invoice_number=invoice.invoice_number,
            total=str(invoice.total),
        )
        return invoice

    async def mark_invoice_as_sent(self, invoice_id: str) -> Invoice:
        invoice = await self._get_invoice(invoice_id)
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = utc_now()
        await self.session.commit()
        return invoice


__all__ = [
    "InvoiceService",
    "allocate_invoice_number",
    "build_invoice_document",
    "build_line_items",
]
