"""
PDF rendering of a check-in report.

Layout (A4 portrait, all measurements in millimetres from the top edge):

  every page   header band: logo box, title, subtitle, separator line
  first page   period line, then the employee box or the "all employees" heading
  every page   table header + at most ``rows_per_page`` data rows
  last page    bold "Total de registros" line
  every page   footer with generation time and "Página X de Y"

The row budget is the same on every page.  The header band reserves room for
the first page's intro block, so overflow pages simply leave that space
blank.  Footers are drawn by ``NumberedCanvas`` once all rows are laid out and
the page count is known.
"""

import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from checkin_console.core.config import settings
from checkin_console.roles import role_display_name
from checkin_console.services.normalizer import CheckInRecord, report_timezone
from checkin_console.services.report_state import EmployeeInfo

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
PAGE_HEIGHT_MM = PAGE_HEIGHT / mm
MARGIN = 15.0
USABLE_WIDTH = PAGE_WIDTH / mm - 2 * MARGIN

LOGO_TOP = 15.0
LOGO_SIZE = 20.0
HEADER_BOTTOM = 45.0
INTRO_HEIGHT = 30.0
TABLE_HEADER_HEIGHT = 8.0
ROW_HEIGHT = 7.0
TOTALS_HEIGHT = 10.0
FOOTER_HEIGHT = 25.0

COLUMNS: tuple[tuple[str, float], ...] = (
    ("Nome do Funcionário", 40.0),
    ("Data do Check-in", 30.0),
    ("Hora", 30.0),
    ("Endereço de Localização", 85.0),
)
ADDRESS_MAX_CHARS = 50

FIRST_PAGE_SUBTITLE = "Relatório de Check-ins"
OVERFLOW_SUBTITLE = "Continuação do Relatório"
GENERAL_HEADING = "Relatório Geral - Todos os Funcionários"
NOT_INFORMED = "Não informado"

PALETTE = {
    "brand": colors.Color(0 / 255, 51 / 255, 102 / 255),
    "logo_fallback": colors.Color(203 / 255, 173 / 255, 108 / 255),
    "subtitle": colors.Color(102 / 255, 102 / 255, 102 / 255),
    "line": colors.Color(200 / 255, 200 / 255, 200 / 255),
    "box_stroke": colors.Color(220 / 255, 220 / 255, 220 / 255),
    "stripe": colors.Color(245 / 255, 245 / 255, 245 / 255),
    "footer": colors.Color(128 / 255, 128 / 255, 128 / 255),
}


@dataclass
class ReportMeta:
    start_date: date
    end_date: date
    generated_at: datetime
    employee: EmployeeInfo | None = None
    title: str = field(default_factory=lambda: settings.REPORT_TITLE)


@dataclass(frozen=True)
class TableRow:
    index: int
    name: str
    date: str
    time: str
    address: str


@dataclass
class RenderedDocument:
    content: bytes
    filename: str
    page_count: int
    pages: list[list[TableRow]]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def format_date_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def truncate(text: str, max_chars: int = ADDRESS_MAX_CHARS) -> str:
    return text[:max_chars] + "..." if len(text) > max_chars else text


def default_rows_per_page() -> int:
    available = PAGE_HEIGHT_MM - (HEADER_BOTTOM + INTRO_HEIGHT + TABLE_HEADER_HEIGHT) - TOTALS_HEIGHT - FOOTER_HEIGHT
    return max(1, math.floor(available / ROW_HEIGHT))


def paginate(rows: Sequence[TableRow], rows_per_page: int) -> list[list[TableRow]]:
    """Split rows into pages of ``rows_per_page``; an empty report still has one page."""
    if rows_per_page < 1:
        raise ValueError("rows_per_page must be positive")
    pages = [list(rows[i : i + rows_per_page]) for i in range(0, len(rows), rows_per_page)]
    return pages or [[]]


def build_rows(records: Sequence[CheckInRecord], tz: tzinfo) -> list[TableRow]:
    rows = []
    for index, record in enumerate(records):
        local = record.timestamp.astimezone(tz)
        rows.append(
            TableRow(
                index=index,
                name=record.username or "Não identificado",
                date=format_date_br(local),
                time=local.strftime("%H:%M"),
                address=truncate(record.address or "Endereço não disponível"),
            )
        )
    return rows


def footer_lines(page_number: int, page_count: int, generated_at: datetime) -> tuple[str, str]:
    stamp = f"Relatório gerado em: {format_date_br(generated_at)} às {generated_at.strftime('%H:%M')}"
    return stamp, f"Página {page_number} de {page_count}"


def report_filename(meta: ReportMeta, extension: str = "pdf") -> str:
    period = f"{meta.start_date.isoformat()}_a_{meta.end_date.isoformat()}"
    if meta.employee is not None:
        name = re.sub(r"[^A-Za-z0-9]", "", meta.employee.name or "") or "funcionario"
        return f"relatorio_{name}_{period}.{extension}"
    return f"relatorio_todos_{period}.{extension}"


# ---------------------------------------------------------------------------
# Canvas
# ---------------------------------------------------------------------------


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers footers until the total page count is known."""

    def __init__(self, *args: Any, generated_at: datetime, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._generated_at = generated_at
        self._saved_page_states: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    @property
    def page_count(self) -> int:
        return len(self._saved_page_states)

    def _draw_footer(self, total_pages: int) -> None:
        stamp, page_label = footer_lines(self._pageNumber, total_pages, self._generated_at)
        self.saveState()
        self.setStrokeColor(PALETTE["line"])
        self.setLineWidth(0.5)
        self.line(MARGIN * mm, _y(PAGE_HEIGHT_MM - 20), PAGE_WIDTH - MARGIN * mm, _y(PAGE_HEIGHT_MM - 20))
        self.setFillColor(PALETTE["footer"])
        self.setFont("Helvetica", 8)
        self.drawString(MARGIN * mm, _y(PAGE_HEIGHT_MM - 12), stamp)
        self.drawRightString(PAGE_WIDTH - MARGIN * mm, _y(PAGE_HEIGHT_MM - 12), page_label)
        self.restoreState()


def _y(top_mm: float) -> float:
    """Convert a distance from the top edge (mm) into a canvas y coordinate (pt)."""
    return PAGE_HEIGHT - top_mm * mm


def _fit_text(canv: canvas.Canvas, text: str, *, font_name: str, font_size: float, max_width: float) -> str:
    if canv.stringWidth(text, font_name, font_size) <= max_width:
        return text
    suffix = "..."
    clipped = text
    while clipped and canv.stringWidth(clipped + suffix, font_name, font_size) > max_width:
        clipped = clipped[:-1]
    return clipped + suffix if clipped else suffix


def _draw_logo(canv: canvas.Canvas, logo_path: str | None) -> None:
    x, y = MARGIN * mm, _y(LOGO_TOP + LOGO_SIZE)
    size = LOGO_SIZE * mm
    if logo_path:
        try:
            canv.drawImage(ImageReader(logo_path), x, y, width=size, height=size, mask="auto")
            return
        except Exception as exc:
            logger.warning("Logo '%s' could not be drawn, using solid mark: %s", logo_path, exc)
    canv.saveState()
    canv.setFillColor(PALETTE["logo_fallback"])
    canv.rect(x, y, size, size, stroke=0, fill=1)
    canv.restoreState()


def _draw_page_header(canv: canvas.Canvas, title: str, subtitle: str, logo_path: str | None) -> float:
    _draw_logo(canv, logo_path)

    text_x = (MARGIN + LOGO_SIZE + 5) * mm
    canv.setFillColor(PALETTE["brand"])
    canv.setFont("Helvetica-Bold", 16)
    canv.drawString(text_x, _y(25), title)

    canv.setFillColor(PALETTE["subtitle"])
    canv.setFont("Helvetica", 12)
    canv.drawString(text_x, _y(32), subtitle)

    canv.setStrokeColor(PALETTE["line"])
    canv.setLineWidth(0.5)
    canv.line(MARGIN * mm, _y(40), PAGE_WIDTH - MARGIN * mm, _y(40))
    return HEADER_BOTTOM


def _draw_employee_box(canv: canvas.Canvas, employee: EmployeeInfo, top: float) -> float:
    canv.saveState()
    canv.setStrokeColor(PALETTE["box_stroke"])
    canv.setFillColor(PALETTE["stripe"])
    canv.setLineWidth(0.3)
    canv.roundRect(MARGIN * mm, _y(top + 20), USABLE_WIDTH * mm, 20 * mm, 3 * mm, stroke=1, fill=1)
    canv.restoreState()

    col1 = MARGIN + 5
    col2 = MARGIN + USABLE_WIDTH / 2
    fields = (
        ((col1, top + 7), "Nome:", employee.name or NOT_INFORMED),
        ((col2, top + 7), "Telefone:", employee.phone or NOT_INFORMED),
        ((col1, top + 14), "Email:", employee.email or NOT_INFORMED),
        ((col2, top + 14), "Função:", role_display_name(employee.role)),
    )
    canv.setFillColor(colors.black)
    for (x, y), label, value in fields:
        canv.setFont("Helvetica-Bold", 8)
        canv.drawString(x * mm, _y(y), label)
        canv.setFont("Helvetica", 8)
        canv.drawString((x + 15) * mm, _y(y), value)
    return top + 22


def _draw_intro(canv: canvas.Canvas, meta: ReportMeta, top: float) -> float:
    canv.setFillColor(colors.black)
    canv.setFont("Helvetica", 10)
    canv.drawString(
        MARGIN * mm,
        _y(top),
        f"Período: {format_date_br(meta.start_date)} a {format_date_br(meta.end_date)}",
    )
    top += 8
    if meta.employee is not None:
        top = _draw_employee_box(canv, meta.employee, top)
    else:
        canv.setFillColor(PALETTE["brand"])
        canv.setFont("Helvetica-Bold", 11)
        canv.drawString(MARGIN * mm, _y(top), GENERAL_HEADING)
        top += 8
    return top


def _draw_table_header(canv: canvas.Canvas, top: float) -> float:
    x = MARGIN
    canv.setFont("Helvetica-Bold", 9)
    for label, width in COLUMNS:
        canv.setFillColor(PALETTE["brand"])
        canv.rect(x * mm, _y(top + TABLE_HEADER_HEIGHT), width * mm, TABLE_HEADER_HEIGHT * mm, stroke=0, fill=1)
        canv.setFillColor(colors.white)
        canv.drawCentredString((x + width / 2) * mm, _y(top + 5), label)
        x += width
    return top + TABLE_HEADER_HEIGHT


def _draw_row(canv: canvas.Canvas, row: TableRow, top: float) -> float:
    # Striping follows the global row index, so parity carries across page breaks
    table_width = sum(width for _, width in COLUMNS)
    canv.setFillColor(PALETTE["stripe"] if row.index % 2 == 0 else colors.white)
    canv.rect(MARGIN * mm, _y(top + ROW_HEIGHT), table_width * mm, ROW_HEIGHT * mm, stroke=0, fill=1)

    baseline = _y(top + 4.5)
    x = MARGIN
    canv.setFillColor(colors.black)
    cells = (
        (row.name, "Helvetica-Bold"),
        (row.date, "Helvetica"),
        (row.time, "Helvetica"),
        (row.address, "Helvetica"),
    )
    for (text, font), (_, width) in zip(cells, COLUMNS):
        canv.setFont(font, 8)
        fitted = _fit_text(canv, text, font_name=font, font_size=8, max_width=(width - 3) * mm)
        canv.drawString((x + 2) * mm, baseline, fitted)
        x += width
    return top + ROW_HEIGHT


def render_document(
    records: Sequence[CheckInRecord],
    meta: ReportMeta,
    rows_per_page: int | None = None,
    logo_path: str | None = None,
    tz: tzinfo | None = None,
) -> RenderedDocument:
    """Lay out ``records`` (already sorted) into a paginated PDF."""
    tz = tz or report_timezone()
    if rows_per_page is None:
        rows_per_page = settings.REPORT_ROWS_PER_PAGE or default_rows_per_page()
    if rows_per_page > default_rows_per_page():
        logger.warning(
            "Limite de %d linhas por página não cabe na página; usando %d",
            rows_per_page, default_rows_per_page(),
        )
        rows_per_page = default_rows_per_page()
    if logo_path is None:
        logo_path = settings.REPORT_LOGO_PATH

    pages = paginate(build_rows(records, tz), rows_per_page)

    buffer = io.BytesIO()
    canv = NumberedCanvas(
        buffer,
        pagesize=A4,
        invariant=1,
        generated_at=meta.generated_at.astimezone(tz),
    )
    canv.setTitle(f"{meta.title} - {FIRST_PAGE_SUBTITLE}")

    top = 0.0
    for page_index, page_rows in enumerate(pages):
        if page_index == 0:
            top = _draw_page_header(canv, meta.title, FIRST_PAGE_SUBTITLE, logo_path)
            top = _draw_intro(canv, meta, top)
        else:
            canv.showPage()
            top = _draw_page_header(canv, meta.title, OVERFLOW_SUBTITLE, logo_path)
        top = _draw_table_header(canv, top)
        for row in page_rows:
            top = _draw_row(canv, row, top)

    canv.setFillColor(colors.black)
    canv.setFont("Helvetica-Bold", 10)
    canv.drawString(MARGIN * mm, _y(top + 5), f"Total de registros: {len(records)}")
    canv.showPage()
    canv.save()

    logger.info(
        "PDF gerado: %d registros, %d páginas (%d linhas por página)",
        len(records), canv.page_count, rows_per_page,
    )
    return RenderedDocument(
        content=buffer.getvalue(),
        filename=report_filename(meta, "pdf"),
        page_count=canv.page_count,
        pages=pages,
    )
