"""
PDF generation utilities for invoices.

Rendering uses ReportLab's built-in Helvetica, which has no glyphs for the
Romanian comma/cedilla letters, so every string goes through
normalize_romanian_text() before it reaches the document.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.exceptions import InvoiceGenerationError
from app.core.logging import get_logger

logger = get_logger(__name__)

_RO_TRANSLATION = str.maketrans(
    {
        "ă": "a",
        "Ă": "A",
        "â": "a",
        "Â": "A",
        "î": "i",
        "Î": "I",
        "ș": "s",
        "Ș": "S",
        "ş": "s",
        "Ş": "S",
        "ț": "t",
        "Ț": "T",
        "ţ": "t",
        "Ţ": "T",
    }
)

LEGAL_NOTE = (
    "Factura este valabila fara semnatura si stampila conform art. 319 alin. (29) "
    "din Codul fiscal."
)


def normalize_romanian_text(text: Any) -> str:
    if text is None:
        return ""
    return str(text).translate(_RO_TRANSLATION)


def format_amount(amount: Decimal) -> str:
    return f"{amount:.2f} RON"


@dataclass
class PartyInfo:
    """Seller or buyer block; empty strings are skipped on render."""

    name: str
    lines: list[str] = field(default_factory=list)


@dataclass
class LineItem:
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


@dataclass
class InvoiceDocument:
    invoice_number: str
    issue_date: datetime
    order_number: str
    seller: PartyInfo
    buyer: PartyInfo
    line_items: list[LineItem]
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    footer_lines: list[str] = field(default_factory=list)


class InvoicePDFGenerator:
    """Renders an InvoiceDocument to PDF bytes."""

    async def render_invoice(self, doc: InvoiceDocument) -> bytes:
        try:
            return await asyncio.to_thread(self._render, doc)
        except Exception as e:
            logger.error("invoice_pdf_render_failed", invoice_number=doc.invoice_number, error=str(e))
            raise InvoiceGenerationError(
                f"Generarea PDF a esuat: {e}", "generation_failed"
            ) from e

    def _render(self, data: InvoiceDocument) -> bytes:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=A4,
            rightMargin=2 * cm,
            leftMargin=2 * cm,
            topMargin=2 * cm,
            bottomMargin=2 * cm,
            title=f"Factura {data.invoice_number}",
            author=normalize_romanian_text(data.seller.name),
        )

        styles = getSampleStyleSheet()
        story: list[Any] = []

        def para(text: Any, style: str = "Normal") -> Paragraph:
            return Paragraph(escape(normalize_romanian_text(text)), styles[style])

        # Header
        story.append(para("FACTURA", "Title"))
        story.append(para(f"Nr. {data.invoice_number}", "Heading3"))
        story.append(para(f"Data: {data.issue_date:%d.%m.%Y}"))
        story.append(para(f"Comanda: {data.order_number}"))
        story.append(Spacer(1, 0.5 * cm))

        # Seller / buyer side by side
        def party_cell(title: str, party: PartyInfo) -> list[Paragraph]:
            cell = [Paragraph(f"<b>{title}</b>", styles["Normal"]), para(party.name)]
            cell.extend(para(line) for line in party.lines if line)
            return cell

        parties = Table(
            [[party_cell("FURNIZOR:", data.seller), party_cell("CUMPARATOR:", data.buyer)]],
            colWidths=[8.5 * cm, 8.5 * cm],
        )
        parties.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        story.append(parties)
        story.append(Spacer(1, 0.7 * cm))

        # Line items
        rows: list[list[Any]] = [["Nr.", "Denumire produs/serviciu", "Cant.", "Pret unitar", "Total"]]
        for idx, item in enumerate(data.line_items, start=1):
            rows.append(
                [
                    str(idx),
                    para(item.description),
                    str(item.quantity),
                    format_amount(item.unit_price),
                    format_amount(item.total),
                ]
            )
        items_table = Table(rows, colWidths=[1.2 * cm, 8 * cm, 1.6 * cm, 3.1 * cm, 3.1 * cm])
        items_table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("ALIGN", (0, 0), (0, -1), "CENTER"),
                    ("ALIGN", (2, 0), (2, -1), "CENTER"),
                    ("ALIGN", (3, 0), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
                ]
            )
        )
        story.append(items_table)
        story.append(Spacer(1, 0.5 * cm))

        # Totals
        totals: list[list[str]] = [["Subtotal:", format_amount(data.subtotal)]]
        if data.shipping > 0:
            totals.append(["Transport:", format_amount(data.shipping)])
        totals.append(["TOTAL:", format_amount(data.total)])
        totals_table = Table(totals, colWidths=[3 * cm, 3.5 * cm], hAlign="RIGHT")
        totals_table.setStyle(
            TableStyle(
                [
                    ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                    ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                    ("FONTSIZE", (0, -1), (-1, -1), 12),
                ]
            )
        )
        story.append(totals_table)
        story.append(Spacer(1, 1.5 * cm))

        # Footer
        for line in data.footer_lines:
            story.append(para(line))
        story.append(para(LEGAL_NOTE))

        doc.build(story)
        return buf.getvalue()


__all__ = [
    "InvoiceDocument",
    "InvoicePDFGenerator",
    "LineItem",
    "PartyInfo",
    "format_amount",
    "normalize_romanian_text",
]
