"""
Fixed A4 page layout for invoices and quotations.

Everything here is pure: a Document plus Settings go in, a PageLayout of
absolutely positioned blocks (millimetres from the top-left corner) comes
out. Painting is done by core.rendering.raster.
"""
from __future__ import annotations
from datetime import date
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from core.models.document import Document, Invoice, Quotation
from core.services.totals import format_money
from core.settings import Settings

PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
MARGIN_MM = 15.0
CONTENT_WIDTH_MM = PAGE_WIDTH_MM - 2 * MARGIN_MM

DARK = "#2e2d2d"
TEXT = "#333333"
MUTED = "#666666"
ROW_SHADES = ("#f5f5f5", "#ffffff")

TABLE_TOP_MM = 88.0
TABLE_HEADER_MM = 8.0
ROWS_TOP_MM = 96.0
ROW_HEIGHT_MM = 10.0
ROWS_BAND_MM = 70.0
MAX_ROWS = int(ROWS_BAND_MM // ROW_HEIGHT_MM)
COLUMN_SHARES = (0.60, 0.13, 0.13, 0.14)
COLUMN_LABELS = ("DESCRIPTION", "PRICE", "QTY", "TOTAL")

LINE_MM = 4.5
RIGHT_COLUMN_X = 135.0


# ---------- Blocks ---------- #

class TextBlock(BaseModel):
    kind: Literal["text"] = "text"
    x: float
    y: float
    width: float
    height: float = 6.0
    text: str
    size_px: float = 11
    bold: bool = False
    italic: bool = False
    color: str = TEXT
    align: Literal["left", "right", "center"] = "left"


class RectBlock(BaseModel):
    kind: Literal["rect"] = "rect"
    x: float
    y: float
    width: float
    height: float
    fill: str


class LineBlock(BaseModel):
    kind: Literal["line"] = "line"
    x1: float
    y1: float
    x2: float
    y2: float
    color: str = DARK
    width_mm: float = 0.3


class ImageBlock(BaseModel):
    kind: Literal["image"] = "image"
    x: float = 0.0
    y: float = 0.0
    width: float = PAGE_WIDTH_MM
    height: float = PAGE_HEIGHT_MM
    path: str


Block = Union[TextBlock, RectBlock, LineBlock, ImageBlock]


class PageLayout(BaseModel):
    document_kind: str
    document_id: Optional[str] = None
    width_mm: float = PAGE_WIDTH_MM
    height_mm: float = PAGE_HEIGHT_MM
    blocks: List[Block] = Field(default_factory=list)
    rendered_rows: int = 0
    truncated_rows: int = 0

    def images(self) -> List[ImageBlock]:
        return [b for b in self.blocks if isinstance(b, ImageBlock)]

    def texts(self) -> List[str]:
        return [b.text for b in self.blocks if isinstance(b, TextBlock)]


# ---------- Helpers ---------- #

def _fmt_date(d: Optional[date]) -> str:
    return d.strftime("%d/%m/%Y") if d else "-"


def _column_edges() -> List[float]:
    edges = [MARGIN_MM]
    for share in COLUMN_SHARES:
        edges.append(edges[-1] + CONTENT_WIDTH_MM * share)
    return edges


def _cells(y: float, values, height: float, **style) -> List[TextBlock]:
    edges = _column_edges()
    out = []
    for i, value in enumerate(values):
        x0, x1 = edges[i], edges[i + 1]
        align = "left" if i == 0 else "right"
        out.append(TextBlock(
            x=x0 + 2, y=y, width=(x1 - x0) - 4, height=height, text=value, align=align, **style
        ))
    return out


def _rule(y: float) -> LineBlock:
    return LineBlock(x1=MARGIN_MM, y1=y, x2=PAGE_WIDTH_MM - MARGIN_MM, y2=y)


# ---------- Sections ---------- #

def _header(doc: Document, settings: Settings) -> List[Block]:
    blocks: List[Block] = []
    c = doc.customer_snapshot
    left_w = 110.0
    blocks.append(TextBlock(x=MARGIN_MM, y=54, width=left_w, text=c.full_name if c else "-", size_px=15, bold=True))
    details = [
        f"Date: {_fmt_date(doc.issue_date)}",
        c.address.one_line() if c and c.address.one_line() else "",
        c.email if c and c.email else "",
        c.phone if c and c.phone else "",
        f"VAT Number: {c.vat_number}" if c and c.vat_number else "",
    ]
    y = 60.0
    for line in details:
        if not line:
            continue
        blocks.append(TextBlock(x=MARGIN_MM, y=y, width=left_w, text=line, size_px=11, color=MUTED))
        y += LINE_MM

    right_x = PAGE_WIDTH_MM - MARGIN_MM - 80
    blocks.append(TextBlock(
        x=right_x, y=65, width=80, text=f"#{doc.document_id or 'DRAFT'}", size_px=13, bold=True, align="right",
    ))
    blocks.append(TextBlock(
        x=right_x, y=71, width=80, text=f"VAT: {settings.company.vat_number}", size_px=11, align="right",
    ))
    return blocks


def _items_table(doc: Document, currency: str) -> tuple[List[Block], int, int]:
    blocks: List[Block] = [
        RectBlock(x=MARGIN_MM, y=TABLE_TOP_MM, width=CONTENT_WIDTH_MM, height=TABLE_HEADER_MM, fill=DARK),
    ]
    blocks += _cells(TABLE_TOP_MM, COLUMN_LABELS, TABLE_HEADER_MM, size_px=12, bold=True, color="#ffffff")

    if not doc.items:
        blocks.append(RectBlock(x=MARGIN_MM, y=ROWS_TOP_MM, width=CONTENT_WIDTH_MM, height=ROW_HEIGHT_MM, fill=ROW_SHADES[0]))
        blocks += _cells(ROWS_TOP_MM, ("No items added", "-", "-", "-"), ROW_HEIGHT_MM, size_px=11, italic=True, color=MUTED)
        return blocks, 0, 0

    shown = doc.items[:MAX_ROWS]
    for i, li in enumerate(shown):
        y = ROWS_TOP_MM + i * ROW_HEIGHT_MM
        blocks.append(RectBlock(x=MARGIN_MM, y=y, width=CONTENT_WIDTH_MM, height=ROW_HEIGHT_MM, fill=ROW_SHADES[i % 2]))
        blocks += _cells(
            y,
            (li.item_name, format_money(li.unit_price, currency), str(li.quantity), format_money(li.total, currency)),
            ROW_HEIGHT_MM,
            size_px=11,
        )
    return blocks, len(shown), len(doc.items) - len(shown)


def _totals(doc: Document, currency: str) -> List[Block]:
    label_x, value_x, y = 120.0, 150.0, 165.0
    rows = [("SUBTOTAL", format_money(doc.sub_total, currency))]
    if isinstance(doc, Invoice) and doc.apply_tax:
        rows.append((f"TAX ({doc.tax_rate * 100:g}%)", format_money(doc.tax_amount, currency)))
    rows.append(("DISCOUNT", f"- {format_money(doc.discount_amount, currency)}"))

    blocks: List[Block] = []
    for label, value in rows:
        blocks.append(TextBlock(x=label_x, y=y, width=30, text=label, size_px=11, bold=True))
        blocks.append(TextBlock(x=value_x, y=y, width=45, text=value, size_px=11, align="right"))
        y += 6
    blocks.append(TextBlock(x=label_x, y=y + 1, width=30, text="TOTAL", size_px=14, bold=True))
    blocks.append(TextBlock(
        x=value_x, y=y + 1, width=45, text=format_money(doc.total_amount, currency), size_px=14, bold=True, align="right",
    ))
    return blocks


def _payment_block(doc: Document, settings: Settings) -> List[Block]:
    x, w, y = MARGIN_MM, 95.0, 175.0
    if isinstance(doc, Quotation):
        return [
            TextBlock(x=x, y=y, width=w, text="VALID UNTIL", size_px=11, bold=True),
            TextBlock(x=x, y=y + LINE_MM + 0.5, width=w, text=_fmt_date(doc.valid_until), size_px=11),
        ]
    lines = [
        ("PAYMENT DATA", True),
        (f"ACCOUNT#: {settings.company.bank_account or '-'}", False),
        (f"NAME: {settings.company.account_name or settings.company.name}", False),
        (f"PAYMENT METHOD: {doc.payment_method or '-'}", False),
    ]
    out: List[Block] = []
    for text, bold in lines:
        out.append(TextBlock(x=x, y=y, width=w, text=text, size_px=11, bold=bold))
        y += LINE_MM + 0.5
    return out


def _terms(doc: Document, settings: Settings, top: float) -> List[Block]:
    x, w = MARGIN_MM, 110.0
    blocks: List[Block] = [TextBlock(x=x, y=top, width=w, text="TERMS AND CONDITIONS", size_px=11, bold=True)]
    if isinstance(doc, Quotation):
        terms = [
            t.format(valid_until=_fmt_date(doc.valid_until), payment_method=doc.payment_method or "-")
            for t in settings.quotation_terms
        ]
    else:
        terms = list(settings.invoice_terms)
    y = top + LINE_MM + 1
    for t in terms:
        blocks.append(TextBlock(x=x, y=y, width=w, text=f"• {t}", size_px=10, color=MUTED))
        y += 4.0
    if doc.notes:
        y += 1.5
        blocks.append(TextBlock(x=x, y=y, width=w, text="Additional Notes:", size_px=10, bold=True))
        blocks.append(TextBlock(x=x, y=y + 4.0, width=w, text=doc.notes, size_px=10, italic=True, color=MUTED))
    return blocks


def _metadata(doc: Document, top: float) -> List[Block]:
    c = doc.customer_snapshot
    vehicle_number = getattr(doc, "vehicle_number", None) or (c.vehicle_number if c else None)
    rows = [
        ("Vehicle Number", vehicle_number or "-"),
        ("Vehicle Model", (c.vehicle_model if c else None) or "-"),
        ("Year of Manufacture", (c.year_of_manufacture if c else None) or "-"),
        ("Issue Date", _fmt_date(doc.issue_date)),
    ]
    if isinstance(doc, Invoice):
        rows.append(("Due Date", _fmt_date(doc.due_date)))
    elif isinstance(doc, Quotation):
        rows.append(("Valid Until", _fmt_date(doc.valid_until)))

    blocks: List[Block] = []
    y = top
    for label, value in rows:
        blocks.append(TextBlock(x=RIGHT_COLUMN_X, y=y, width=32, text=f"{label}:", size_px=10, bold=True))
        blocks.append(TextBlock(x=RIGHT_COLUMN_X + 32, y=y, width=28, text=value, size_px=10, align="right"))
        y += LINE_MM
    return blocks


# ---------- Entry point ---------- #

def build_layout(doc: Document, settings: Optional[Settings] = None, today: Optional[date] = None) -> PageLayout:
    """
    Rows beyond the 70 mm table band are not drawn; their count is reported
    in PageLayout.truncated_rows.
    """
    settings = settings or Settings()
    currency = settings.currency
    blocks: List[Block] = []

    template = settings.template_path(doc.kind)
    if template is not None:
        blocks.append(ImageBlock(path=str(template)))

    blocks += _header(doc, settings)
    blocks.append(_rule(83.0 if isinstance(doc, Invoice) else 82.0))

    table, rendered, truncated = _items_table(doc, currency)
    blocks += table
    blocks += _payment_block(doc, settings)
    blocks += _totals(doc, currency)

    second_rule = 201.0 if isinstance(doc, Invoice) else 203.0
    blocks.append(_rule(second_rule))
    blocks += _terms(doc, settings, second_rule + 6)
    blocks += _metadata(doc, second_rule + 6)

    blocks.append(TextBlock(x=32, y=256, width=60, text=_fmt_date(today or date.today()), size_px=11))

    return PageLayout(
        document_kind=doc.kind,
        document_id=doc.document_id,
        blocks=blocks,
        rendered_rows=rendered,
        truncated_rows=truncated,
    )
