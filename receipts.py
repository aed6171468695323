"""
Order receipts.

The layout is built as a list of (style, text) lines so it can be checked
without parsing PDF output; `render_receipt` draws those lines with
reportlab into an in-memory buffer. The bytes are attached to the order
document itself, replacing any earlier receipt.

The standard PDF fonts have no rupee sign, so receipts embed DejaVu Sans.
It is taken from RECEIPT_FONT_DIR when set, otherwise from the copy
matplotlib ships with its data files.
"""
import io
import logging
import os
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import matplotlib
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from config import Settings
from errors import RenderError
from orders import OrderStore, receipt_title

logger = logging.getLogger(__name__)

MARGIN = 40
FONT_FILES = {
    "Receipt": "DejaVuSans.ttf",
    "Receipt-Bold": "DejaVuSans-Bold.ttf",
}
STYLES = {
    "header": ("Receipt-Bold", 22),
    "title": ("Receipt", 14),
    "heading": ("Receipt-Bold", 12),
    "text": ("Receipt", 12),
    "gap": ("Receipt", 8),
}


def default_font_dir() -> str:
    return os.path.join(matplotlib.get_data_path(), "fonts", "ttf")


@lru_cache()
def register_fonts(font_dir: str) -> None:
    for name, filename in FONT_FILES.items():
        pdfmetrics.registerFont(TTFont(name, os.path.join(font_dir, filename)))


def money(amount: Any, currency: str) -> str:
    value = float(amount or 0)
    if value.is_integer():
        return f"{currency}{int(value)}"
    return f"{currency}{value:.2f}"


def format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %b %Y, %I:%M %p")
    return str(value or "")


def receipt_lines(order: Dict[str, Any], store_name: str, currency: str) -> List[Tuple[str, str]]:
    customer = order.get("customer") or {}
    lines = [
        ("header", store_name),
        ("title", "Order Receipt"),
        ("gap", ""),
        ("text", f"Customer: {customer.get('name', '')}"),
        ("text", f"Phone: {customer.get('phone', '')}"),
    ]

    address = customer.get("address")
    if address:
        lines.append((
            "text",
            f"Address: {address.get('line1', '')}, {address.get('city', '')}, "
            f"{address.get('state', '')} - {address.get('pincode', '')}",
        ))

    lines += [("gap", ""), ("heading", "Items:")]
    for i, item in enumerate(order.get("cartItems") or [], start=1):
        title = item.get("title") or item.get("name") or "Item"
        qty = item.get("qty") or 0
        subtotal = (item.get("price") or 0) * qty
        lines.append(("text", f"{i}. {title} (x{qty}) - {money(subtotal, currency)}"))

    lines += [
        ("gap", ""),
        ("text", f"Total Price: {money(order.get('totalPrice'), currency)}"),
        ("text", f"Payment Method: {order.get('paymentMethod', '')}"),
        ("text", f"Order Status: {order.get('orderStatus', '')}"),
        ("text", f"Date: {format_date(order.get('createdAt') or order.get('orderedAt'))}"),
    ]
    return lines


def render_receipt(
    order: Dict[str, Any], store_name: str, currency: str, font_dir: Optional[str] = None
) -> bytes:
    buffer = io.BytesIO()
    try:
        register_fonts(font_dir or default_font_dir())
        pdf = canvas.Canvas(buffer, pagesize=A4)
        pdf.setTitle(receipt_title(order))
        width, height = A4
        y = height - MARGIN
        for style, text in receipt_lines(order, store_name, currency):
            font, size = STYLES[style]
            if y < MARGIN:
                pdf.showPage()
                y = height - MARGIN
            if text:
                pdf.setFont(font, size)
                if style in ("header", "title"):
                    pdf.drawCentredString(width / 2, y, text)
                else:
                    pdf.drawString(MARGIN, y, text)
            y -= size * 1.6
        pdf.save()
    except Exception as e:
        logger.exception("Rendering receipt for order %s failed", order.get("_id"))
        raise RenderError("Failed to generate receipt", detail=str(e)) from e
    return buffer.getvalue()


def generate_receipt(store: OrderStore, order_id: str, settings: Settings) -> Tuple[bytes, Dict[str, Any]]:
    """Render a fresh receipt for the order and attach it, overwriting the previous one."""
    order = store.get_for_receipt(order_id)
    pdf = render_receipt(
        order, settings.store_name, settings.currency_symbol, settings.receipt_font_dir
    )
    saved = store.save_receipt(order_id, pdf)
    logger.info("Receipt generated for order %s (%d bytes)", order_id, len(pdf))
    return pdf, saved
