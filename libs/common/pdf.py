"""
PDF generation utilities using ReportLab.
"""

import io
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

BRAND_COLOR = colors.HexColor("#1d4ed8")
MUTED_COLOR = colors.HexColor("#64748b")
GRID_COLOR = colors.HexColor("#e2e8f0")


def _money(amount: Decimal) -> str:
    return f"${Decimal(amount):,.2f}"


def _document(buffer: io.BytesIO) -> SimpleDocTemplate:
    return SimpleDocTemplate(
        buffer,
        pagesize=LETTER,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )


def _line_table(rows: list[list[str]], col_widths: list[float]) -> Table:
    table = Table(rows, colWidths=col_widths)
    table.setStyle(
        TableStyle(
            [
                # Header
                ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 10),
                # Body
                ("FONTSIZE", (0, 1), (-1, -1), 9),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
                ("PADDING", (0, 0), (-1, -1), 6),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _describe_item(title: str, selected_variations: Optional[dict]) -> str:
    if not selected_variations:
        return title
    details = ", ".join(f"{k}: {v}" for k, v in selected_variations.items())
    return f"{title} ({details})"


def generate_invoice_pdf(
    order_code: str,
    order_date: datetime,
    items: List[dict],  # [{"title", "quantity", "unit_price", "total_price", "selected_variations"}]
    total_amount: Decimal,
    ship_to: Optional[dict] = None,
    site_title: str = "SY Closeouts",
) -> bytes:
    """
    Generate an order invoice.

    Amounts are rendered as given; callers decide whether the copy shows
    fee-inclusive (buyer) or fee-subtracted (seller) prices. Shipping is the
    difference between ``total_amount`` and the item subtotal.

    Returns PDF as bytes for email attachment or download.
    """
    buffer = io.BytesIO()
    doc = _document(buffer)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=24,
        textColor=BRAND_COLOR,
        spaceAfter=12,
    )
    label_style = ParagraphStyle(
        "InvoiceLabel", parent=styles["Normal"], textColor=MUTED_COLOR
    )
    normal_style = styles["Normal"]

    elements = [
        Paragraph(escape(site_title), label_style),
        Paragraph("INVOICE", title_style),
        Paragraph(f"Order #: {escape(order_code)}", normal_style),
        Paragraph(f"Date: {order_date.strftime('%a %b %d %Y')}", normal_style),
        Spacer(1, 12),
    ]

    if ship_to:
        elements.append(Paragraph("<b>Ship To:</b>", normal_style))
        city_line = " ".join(
            part
            for part in [
                ", ".join(p for p in [ship_to.get("city"), ship_to.get("state")] if p),
                ship_to.get("zipCode") or ship_to.get("zip_code") or "",
            ]
            if part
        )
        for line in (
            ship_to.get("name"),
            ship_to.get("address"),
            city_line,
            ship_to.get("country"),
        ):
            if line:
                elements.append(Paragraph(escape(line), normal_style))
        elements.append(Spacer(1, 12))

    rows = [["Description", "Qty", "Unit", "Amount"]]
    subtotal = Decimal("0")
    for item in items:
        total_price = Decimal(item["total_price"])
        subtotal += total_price
        rows.append(
            [
                Paragraph(
                    escape(
                        _describe_item(item["title"], item.get("selected_variations"))
                    ),
                    normal_style,
                ),
                str(item["quantity"]),
                _money(item["unit_price"]),
                _money(total_price),
            ]
        )
    elements.append(
        _line_table(rows, [3.5 * inch, 0.8 * inch, 1.2 * inch, 1.3 * inch])
    )
    elements.append(Spacer(1, 12))

    shipping = max(Decimal(total_amount) - subtotal, Decimal("0"))
    if shipping > 0:
        elements.append(Paragraph(f"Shipping: {_money(shipping)}", normal_style))
    elements.append(Paragraph(f"<b>Total: {_money(total_amount)}</b>", normal_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer.getvalue()


def generate_sales_report_pdf(
    seller_name: str,
    summary: List[dict],  # [{"date": date, "revenue": Decimal}]
    start: date,
    end: date,
) -> bytes:
    """Generate a seller's daily revenue report for a date range."""
    buffer = io.BytesIO()
    doc = _document(buffer)
    styles = getSampleStyleSheet()

    elements = [
        Paragraph("SALES REPORT", styles["Heading1"]),
        Paragraph(
            f"{start.strftime('%a %b %d %Y')} - {end.strftime('%a %b %d %Y')}",
            styles["Normal"],
        ),
        Paragraph(f"Seller: {escape(seller_name)}", styles["Normal"]),
        Spacer(1, 12),
    ]

    rows = [["Date", "Revenue"]]
    total = Decimal("0")
    for row in summary:
        total += Decimal(row["revenue"])
        rows.append([row["date"].strftime("%a %b %d %Y"), _money(row["revenue"])])
    if len(rows) == 1:
        elements.append(Paragraph("No sales in this period.", styles["Normal"]))
    else:
        elements.append(_line_table(rows, [3 * inch, 2 * inch]))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"<b>Total: {_money(total)}</b>", styles["Normal"]))

    doc.build(elements)
    buffer.seek(0)
    return buffer.getvalue()
