# app/routers/admin_orders.py
"""
Admin order management: listing, status/price updates, variant previews,
customer emails and invoices.

Every status change goes through app.services.order_state; the notifier is
triggered only after the change is committed and the order reloaded.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.dependencies import (
    get_current_admin,
    get_email_service,
    get_invoice_service,
    get_storage_service,
)
from app.core.exceptions import (
    InvalidStatusError,
    NotFoundError,
    Print3DException,
    Print3DValidationError,
    PreconditionError,
    StorageError,
)
from app.core.logging import audit_logger, get_logger
from app.models.admin_user import AdminUser
from app.models.invoice import Invoice
from app.models.order import ModelVariant, Order, OrderStatus
from app.routers.upload import read_image
from app.schemas.admin import (
    AdminOrderResponse,
    EmailSentResponse,
    OrderListItem,
    OrderListQuery,
    OrderListResponse,
    OrderUpdate,
    VariantsCreatedResponse,
)
from app.schemas.base import Pagination, SuccessResponse
from app.schemas.invoice import InvoiceResponse
from app.services.email_service import EmailService
from app.services.invoice_service import InvoiceService
from app.services.notifier import trigger_order_status_update
from app.services.order_repository import list_orders, load_order
from app.services.order_state import apply_transition, plan_transition, register_variant_upload
from app.services.storage_service import FOLDER_VARIANTS, StorageService
from app.utils.helpers import format_price

logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin/orders",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _require_status(order: Order, required: OrderStatus, message: str) -> None:
    if order.status != required:
        raise InvalidStatusError(message, current=order.status, target=required)


async def _require_invoice(invoices: InvoiceService, order_id: str) -> Invoice:
    invoice = await invoices.get_invoice_by_order_id(order_id)
    if invoice is None:
        raise NotFoundError("Comanda nu are factură generată", "no_invoice")
    return invoice


async def _auto_invoice(db: AsyncSession, invoices: InvoiceService, order: Order) -> None:
    """Invoice on shipment; failure never undoes the SHIPPED status."""
    order_id, order_number = order.id, order.order_number
    if await invoices.get_invoice_by_order_id(order_id) is not None:
        return
    try:
        await invoices.create_invoice(order_id)
    except (Print3DException, SQLAlchemyError) as e:
        if isinstance(e, SQLAlchemyError):
            await db.rollback()
        logger.warning(
            "auto_invoice_failed",
            order_id=order_id,
            order_number=order_number,
            error=str(e),
        )


# -------------------------------------------------------------------
# Listing / detail
# -------------------------------------------------------------------
@router.get("", response_model=OrderListResponse)
async def list_admin_orders(
    query: OrderListQuery = Depends(),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_orders(
        db,
        status=query.status,
        search=query.search,
        page=query.page,
        limit=query.limit,
        sort_by=query.sort_by,
        sort_order=query.sort_order,
    )
    items = [
        OrderListItem(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_city=order.customer_city,
            price=order.price,
            created_at=order.created_at,
            updated_at=order.updated_at,
            variants_count=variants_count,
        )
        for order, variants_count in rows
    ]
    return OrderListResponse(
        orders=items,
        pagination=Pagination.create(total=total, page=query.page, limit=query.limit),
    )


@router.get("/{order_id}", response_model=AdminOrderResponse)
async def get_admin_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await load_order(db, order_id)


@router.patch("/{order_id}", response_model=AdminOrderResponse)
async def update_order(
    order_id: str,
    payload: OrderUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
    invoices: InvoiceService = Depends(get_invoice_service),
    email_service: EmailService = Depends(get_email_service),
):
    order = await load_order(db, order_id)

    # reject an illegal status before touching any other field
    transition = None
    if payload.status is not None:
        transition = plan_transition(order, payload.status)

    changes: dict = {}
    if payload.price is not None:
        changes["price"] = {"from": format_price(order.price), "to": format_price(payload.price)}
        order.price = payload.price
    if payload.tracking_number is not None:
        changes["tracking_number"] = {"from": order.tracking_number, "to": payload.tracking_number}
        order.tracking_number = payload.tracking_number
    if payload.notes is not None:
        changes["notes"] = {"from": order.notes, "to": payload.notes}
        order.notes = payload.notes
    if transition is not None and transition.changed:
        apply_transition(order, transition)
        changes["status"] = {
            "from": transition.old_status.value,
            "to": transition.new_status.value,
        }

    await db.commit()
    if changes:
        audit_logger.log_data_change(admin.id, "update", "order", order_id, changes)

    if transition is not None and transition.generate_invoice:
        await _auto_invoice(db, invoices, order)

    order = await load_order(db, order_id)
    if transition is not None and transition.notify:
        trigger_order_status_update(
            order, transition.old_status, transition.new_status, email_service
        )
    return order


# -------------------------------------------------------------------
# Variants
# -------------------------------------------------------------------
@router.post(
    "/{order_id}/variants",
    response_model=VariantsCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_variants(
    order_id: str,
    images: Optional[list[UploadFile]] = File(None),
    descriptions: Optional[list[str]] = Form(None),
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
    storage: StorageService = Depends(get_storage_service),
    email_service: EmailService = Depends(get_email_service),
):
    order = await load_order(db, order_id)

    images = [img for img in (images or []) if img.filename]
    if not images:
        raise Print3DValidationError("Nu au fost trimise imagini", "no_images", http_status=400)
    if len(images) > settings.MAX_VARIANT_IMAGES:
        raise Print3DValidationError(
            f"Maximum {settings.MAX_VARIANT_IMAGES} imagini per încărcare",
            "too_many_images",
            http_status=400,
        )

    # validate the whole batch before anything is uploaded
    payloads = [await read_image(img) for img in images]
    descriptions = descriptions or []

    created: list[ModelVariant] = []
    for idx, (img, data) in enumerate(zip(images, payloads)):
        url = await storage.put(data, img.filename, FOLDER_VARIANTS, img.content_type)
        variant = ModelVariant(
            order_id=order.id,
            preview_image_url=url,
            description=(descriptions[idx] or None) if idx < len(descriptions) else None,
        )
        db.add(variant)
        created.append(variant)

    transition = register_variant_upload(order)
    await db.commit()
    audit_logger.log_data_change(
        admin.id, "create", "model_variant", order_id, {"count": len(created)}
    )

    order = await load_order(db, order_id)
    if transition.notify:
        trigger_order_status_update(
            order, transition.old_status, transition.new_status, email_service
        )
    return {"variants": created}


@router.delete("/{order_id}/variants/{variant_id}", response_model=SuccessResponse)
async def delete_variant(
    order_id: str,
    variant_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
    storage: StorageService = Depends(get_storage_service),
):
    order = await load_order(db, order_id)
    variant = order.find_variant(variant_id)
    if variant is None:
        raise NotFoundError("Varianta nu există", "not_found")

    try:
        await storage.delete(variant.preview_image_url)
    except StorageError as e:
        logger.warning("variant_image_delete_failed", variant_id=variant_id, error=str(e))

    if order.selected_variant_id == variant_id:
        order.selected_variant_id = None
    order.variants.remove(variant)
    await db.commit()
    audit_logger.log_data_change(admin.id, "delete", "model_variant", variant_id, {})
    return SuccessResponse(message="Variantă ștearsă")


# -------------------------------------------------------------------
# Customer emails
# -------------------------------------------------------------------
@router.post("/{order_id}/send-approval-email", response_model=EmailSentResponse)
async def send_approval_email(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    order = await load_order(db, order_id)
    if not order.variants:
        raise PreconditionError("Comanda nu are variante încărcate", "no_variants")
    await email_service.send_variants_ready(order)
    return EmailSentResponse(message="Email de aprobare trimis")


@router.post("/{order_id}/send-shipping-email", response_model=EmailSentResponse)
async def send_shipping_email(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    storage: StorageService = Depends(get_storage_service),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    order = await load_order(db, order_id)
    _require_status(order, OrderStatus.SHIPPED, "Comanda nu este în status expediat")

    invoice = order.invoice
    invoice_pdf = None
    if invoice is not None and invoice.pdf_url:
        try:
            invoice_pdf = await storage.fetch(invoice.pdf_url)
        except StorageError as e:
            logger.warning(
                "invoice_pdf_fetch_failed",
                invoice_number=invoice.invoice_number,
                error=str(e),
            )

    await email_service.send_shipping(order, invoice, invoice_pdf)
    if invoice is not None and invoice_pdf is not None:
        await invoices.mark_invoice_as_sent(invoice.id)
    return EmailSentResponse(message="Email de expediere trimis")


@router.post("/{order_id}/send-review-email", response_model=EmailSentResponse)
async def send_review_email(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    order = await load_order(db, order_id)
    _require_status(order, OrderStatus.DELIVERED, "Comanda nu este livrată")
    await email_service.send_review_request(order)
    return EmailSentResponse(message="Email pentru review trimis")


# -------------------------------------------------------------------
# Invoices
# -------------------------------------------------------------------
@router.post(
    "/{order_id}/invoice/generate",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_invoice(
    order_id: str,
    admin: AdminUser = Depends(get_current_admin),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    invoice = await invoices.create_invoice(order_id)
    audit_logger.log_data_change(
        admin.id, "create", "invoice", invoice.id, {"invoice_number": invoice.invoice_number}
    )
    return invoice


@router.post("/{order_id}/invoice/regenerate", response_model=InvoiceResponse)
async def regenerate_invoice(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    await load_order(db, order_id)
    invoice = await _require_invoice(invoices, order_id)
    invoice = await invoices.regenerate_invoice(invoice.id)
    audit_logger.log_data_change(
        admin.id, "regenerate", "invoice", invoice.id, {"total": format_price(invoice.total)}
    )
    return invoice


@router.post("/{order_id}/invoice/send", response_model=InvoiceResponse)
async def send_invoice(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    storage: StorageService = Depends(get_storage_service),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    order = await load_order(db, order_id)
    invoice = await _require_invoice(invoices, order_id)
    if not invoice.pdf_url:
        raise PreconditionError("Factura nu are PDF generat", "no_pdf")

    invoice_pdf = await storage.fetch(invoice.pdf_url)
    await email_service.send_invoice(order, invoice, invoice_pdf)
    return await invoices.mark_invoice_as_sent(invoice.id)
