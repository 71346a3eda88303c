# easy_receipt/services/export.py
"""
Export freigegebener Belege als TXT, CSV, XLSX oder PDF.

Alle Formate nutzen dieselbe Zeilenprojektion (project_row), damit
Netto/MwSt/Brutto in jedem Format identisch sind. Nur CSV hat einen
festen Vertrag fuer die Weiterverarbeitung (Buchhaltungsimport):
Semikolon, alle Felder in Anfuehrungszeichen, UTF-8 mit BOM, "\\n".
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from xml.sax.saxutils import escape

from easy_receipt.config import settings as app_settings
from easy_receipt.models.entities import STATUS_APPROVED
from easy_receipt.services.errors import RenderError, ValidationError
from easy_receipt.services.money import ZERO, decompose, rate_label, split_by_rate
from easy_receipt.services.query import select

logger = logging.getLogger(__name__)

COLUMNS: Tuple[str, ...] = (
    "id",
    "merchant",
    "gross_amount",
    "net_amount",
    "vat_at_19",
    "vat_at_7",
    "vat_rate_label",
    "date",
    "category",
    "invoice_number",
    "is_deductible",
    "status",
    "created_at",
)

MONEY_COLUMNS = ("gross_amount", "net_amount", "vat_at_19", "vat_at_7")

MIN_MERCHANT_WIDTH = 10


@dataclass(frozen=True)
class ExportRow:
    id: Any
    merchant: str
    gross_amount: Decimal
    net_amount: Decimal
    vat_at_19: Decimal
    vat_at_7: Decimal
    vat_rate_label: str
    date: str
    category: str
    invoice_number: str
    is_deductible: str
    status: str
    created_at: str

    def cells(self) -> List[str]:
        out = []
        for col in COLUMNS:
            value = getattr(self, col)
            out.append(f"{value:.2f}" if col in MONEY_COLUMNS else str(value))
        return out


@dataclass(frozen=True)
class ExportResult:
    format: str
    filename: str
    media_type: str
    content: bytes
    row_count: int

    @property
    def empty(self) -> bool:
        return self.row_count == 0


def project_row(record: Any) -> ExportRow:
    parts = decompose(record.amount if record.amount is not None else ZERO, record.vat_rate, record.vat_amount)
    split = split_by_rate(record.vat_rate, record.vat_amount)
    return ExportRow(
        id=record.id,
        merchant=record.merchant or "-",
        gross_amount=parts.gross,
        net_amount=parts.net,
        vat_at_19=split.vat19,
        vat_at_7=split.vat7,
        vat_rate_label=rate_label(record.vat_rate),
        date=record.date.isoformat() if record.date else "-",
        category=record.category or "-",
        invoice_number=record.invoice_number or "-",
        is_deductible="Ja" if record.is_deductible else "Nein",
        status=record.status,
        created_at=record.created_at.strftime("%d.%m.%Y") if record.created_at else "-",
    )


def eligible(records: Iterable[Any], category: Optional[str] = None) -> List[Any]:
    """Nur freigegebene Belege; PENDING wird stillschweigend ausgelassen."""
    return select(records, status=STATUS_APPROVED, category=category)


def totals(rows: List[ExportRow]) -> Dict[str, Decimal]:
    return {col: sum((getattr(r, col) for r in rows), ZERO) for col in MONEY_COLUMNS}


def export_filename(fmt: str, now: datetime) -> str:
    return f"{app_settings.EXPORT_PREFIX}_{now.date().isoformat()}.{fmt}"


# --- Renderer -------------------------------------------------------------

def render_txt(rows: List[ExportRow], now: datetime) -> bytes:
    table = [list(COLUMNS)] + [r.cells() for r in rows]
    widths = [max(len(line[i]) for line in table) for i in range(len(COLUMNS))]

    def _line(cells: List[str]) -> str:
        parts = []
        for i, (cell, w) in enumerate(zip(cells, widths)):
            parts.append(cell.rjust(w) if COLUMNS[i] in MONEY_COLUMNS else cell.ljust(w))
        return "  ".join(parts).rstrip()

    out = [
        f"{app_settings.APP_NAME} - Belegexport",
        f"Exportiert am {now:%d.%m.%Y %H:%M}",
        "",
        _line(table[0]),
        "  ".join("-" * w for w in widths),
    ]
    out.extend(_line(cells) for cells in table[1:])
    out.append("")
    if rows:
        s = totals(rows)
        out.append(
            f"Summe: {len(rows)} Belege, brutto {s['gross_amount']:.2f}, netto {s['net_amount']:.2f}, "
            f"MwSt 19% {s['vat_at_19']:.2f}, MwSt 7% {s['vat_at_7']:.2f}"
        )
    else:
        out.append("Keine genehmigten Belege.")
    return ("\n".join(out) + "\n").encode("utf-8")


def render_csv(rows: List[ExportRow], now: datetime) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", quotechar='"', quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(COLUMNS)
    for r in rows:
        writer.writerow(r.cells())
    return buf.getvalue().encode("utf-8-sig")


def render_xlsx(rows: List[ExportRow], now: datetime) -> bytes:
    from openpyxl import Workbook
    from openpyxl.styles import Font, PatternFill

    wb = Workbook()
    ws = wb.active
    ws.title = "Belege"
    wb.properties.creator = app_settings.APP_NAME
    wb.properties.created = now
    wb.properties.modified = now

    ws.append(list(COLUMNS))
    for cell in ws[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill("solid", fgColor="1E40AF")

    for r in rows:
        line = []
        for col, text in zip(COLUMNS, r.cells()):
            if col in MONEY_COLUMNS:
                line.append(float(getattr(r, col)))
            elif col == "id" and isinstance(r.id, int):
                line.append(r.id)
            else:
                line.append(text)
        ws.append(line)

    for row in ws.iter_rows(min_row=2):
        for cell, col in zip(row, COLUMNS):
            if col in MONEY_COLUMNS:
                cell.number_format = "0.00"

    # Spaltenbreite Haendler nach laengstem Namen, mit Untergrenze
    longest = max((len(r.merchant) for r in rows), default=0)
    ws.column_dimensions["B"].width = max(MIN_MERCHANT_WIDTH, longest + 2)
    ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def render_pdf(rows: List[ExportRow], now: datetime) -> bytes:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
    from reportlab.lib.units import mm
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    styles = getSampleStyleSheet()
    cell_style = ParagraphStyle("cell", parent=styles["Normal"], fontSize=7, leading=8.5, wordWrap="CJK")
    head_style = ParagraphStyle("head", parent=cell_style, fontName="Helvetica-Bold", textColor=colors.white)

    buf = io.BytesIO()
    # invariant: gleiche Eingabe -> gleiche Bytes (keine Zeitstempel/IDs im PDF)
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4),
                            leftMargin=10*mm, rightMargin=10*mm,
                            topMargin=12*mm, bottomMargin=12*mm,
                            title="Belegexport", author=app_settings.APP_NAME,
                            invariant=1)
    story = []
    story.append(Paragraph(f"{escape(app_settings.APP_NAME)} - Belegexport", styles["Title"]))
    story.append(Paragraph(f"Exportiert am {now:%d.%m.%Y %H:%M}", styles["Normal"]))
    story.append(Spacer(1, 8))

    data = [[Paragraph(col, head_style) for col in COLUMNS]]
    for r in rows:
        data.append([Paragraph(escape(c), cell_style) for c in r.cells()])
    if rows:
        s = totals(rows)
        foot = [""] * len(COLUMNS)
        foot[1] = "Summe"
        for i, col in enumerate(COLUMNS):
            if col in MONEY_COLUMNS:
                foot[i] = f"{s[col]:.2f}"
        data.append([Paragraph(escape(c), cell_style) for c in foot])

    widths = [10, 40, 20, 20, 18, 18, 14, 22, 26, 26, 16, 22, 22]
    t = Table(data, colWidths=[w*mm for w in widths], repeatRows=1)
    style = [("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
             ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1E40AF")),
             ("VALIGN", (0, 0), (-1, -1), "TOP")]
    if rows:
        style.append(("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke))
    t.setStyle(TableStyle(style))
    story.append(t)
    if not rows:
        story.append(Spacer(1, 6))
        story.append(Paragraph("Keine genehmigten Belege.", styles["Normal"]))

    doc.build(story)
    return buf.getvalue()


FORMATS: Dict[str, Tuple[Callable[[List[ExportRow], datetime], bytes], str]] = {
    "txt": (render_txt, "text/plain; charset=utf-8"),
    "csv": (render_csv, "text/csv; charset=utf-8"),
    "xlsx": (render_xlsx, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "pdf": (render_pdf, "application/pdf"),
}


def export_receipts(
    records: Iterable[Any],
    fmt: str,
    category: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    fmt = (fmt or "").lower().strip()
    if fmt not in FORMATS:
        raise ValidationError(f"Unbekanntes Exportformat: {fmt!r} (txt, csv, xlsx, pdf).", ["format"])
    now = now or datetime.now()
    renderer, media_type = FORMATS[fmt]

    rows = [project_row(r) for r in eligible(records, category=category)]
    try:
        content = renderer(rows, now)
    except Exception as exc:
        logger.error("%s-Export fehlgeschlagen: %s", fmt.upper(), exc)
        raise RenderError(f"{fmt.upper()}-Export fehlgeschlagen: {exc}") from exc

    if not rows:
        logger.info("%s-Export: keine genehmigten Belege", fmt.upper())
    else:
        logger.info("%s-Export: %s Belege", fmt.upper(), len(rows))
    return ExportResult(
        format=fmt,
        filename=export_filename(fmt, now),
        media_type=media_type,
        content=content,
        row_count=len(rows),
    )
