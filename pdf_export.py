import io
import os
from datetime import datetime, timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from errors import RenderError
from models import Metrics


REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "UTC")

PAGE_SIZE = LETTER
MARGIN = 50
DIVIDER_X0 = 50
DIVIDER_X1 = 545

FONT_NAME = "Helvetica"
# Helvetica metrics per unit of font size
FONT_ASCENT = 0.718
FONT_LINE_HEIGHT = 1.156

TITLE_TEXT = "Conteo de URLs"
SUBTITLE_TEXT = "Generado por SF Automation - Procesador de prueba Vercel"
CAPTION_TEXT = "URLs encontradas"
TRACE_PLACEHOLDER = "N/A"

TITLE_STYLE = (22, "#1e293b")
SUBTITLE_STYLE = (10, "#64748b")
COUNT_STYLE = (72, "#3b82f6")
CAPTION_STYLE = (16, "#475569")
DETAIL_STYLE = (11, "#334155")
DIVIDER_COLOR = "#e2e8f0"


class _TextFlow:
    """
    Top-down text cursor over a reportlab canvas.

    y grows downwards from the top margin; each text() call advances one
    line at the current font size, move_down() advances a fraction of lines.
    """

    def __init__(self, c: canvas.Canvas, page_size=PAGE_SIZE, margin: float = MARGIN):
        self.c = c
        self.page_width, self.page_height = page_size
        self.left = margin
        self.right = self.page_width - margin
        self.y = float(margin)
        self.font_size = 12

    def style(self, size: int, color: str) -> None:
        self.font_size = size
        self.c.setFont(FONT_NAME, size)
        self.c.setFillColor(HexColor(color))

    def wrap(self, value: str) -> List[str]:
        """Split value into lines that fit between the margins."""
        width = self.right - self.left
        lines: List[str] = []
        for line in simpleSplit(value, FONT_NAME, self.font_size, width):
            # simpleSplit keeps a single over-long word (a file name) whole
            while len(line) > 1 and stringWidth(line, FONT_NAME, self.font_size) > width:
                cut = len(line) - 1
                while cut > 1 and stringWidth(line[:cut], FONT_NAME, self.font_size) > width:
                    cut -= 1
                lines.append(line[:cut])
                line = line[cut:]
            lines.append(line)
        return lines or [""]

    def text(self, value: str, align: str = "left") -> None:
        for line in self.wrap(value):
            baseline = self.page_height - (self.y + FONT_ASCENT * self.font_size)
            if align == "center":
                self.c.drawCentredString((self.left + self.right) / 2, baseline, line)
            else:
                self.c.drawString(self.left, baseline, line)
            self.y += FONT_LINE_HEIGHT * self.font_size

    def move_down(self, lines: float = 1.0) -> None:
        self.y += lines * FONT_LINE_HEIGHT * self.font_size

    def divider(self, x0: float = DIVIDER_X0, x1: float = DIVIDER_X1, color: str = DIVIDER_COLOR) -> None:
        y = self.page_height - self.y
        self.c.setStrokeColor(HexColor(color))
        self.c.line(x0, y, x1, y)


def _resolve_timezone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def format_local_timestamp(ts: datetime, tz_name: str = REPORT_TIMEZONE) -> str:
    """Spanish short date-time, e.g. 19/10/2026, 9:05:07."""
    local = ts.astimezone(_resolve_timezone(tz_name))
    return f"{local.day}/{local.month}/{local.year}, {local.hour}:{local.minute:02d}:{local.second:02d}"


def render_summary_pdf(
    metrics: Metrics,
    base_name: Optional[str] = None,
    file_name: Optional[str] = None,
    tz_name: str = REPORT_TIMEZONE,
) -> bytes:
    """
    Render the one-page URL count summary.

    The canvas writes into a private buffer; its bytes are only returned
    after save() completes, any failure raises RenderError instead.
    """
    buf = io.BytesIO()
    try:
        c = canvas.Canvas(buf, pagesize=PAGE_SIZE)
        c.setTitle(TITLE_TEXT)
        flow = _TextFlow(c)

        flow.style(*TITLE_STYLE)
        flow.text(TITLE_TEXT, align="center")
        flow.move_down(0.5)
        flow.style(*SUBTITLE_STYLE)
        flow.text(SUBTITLE_TEXT, align="center")
        flow.move_down(2)

        flow.divider()
        flow.move_down(1.5)

        flow.style(*COUNT_STYLE)
        flow.text(str(metrics.url_count), align="center")
        flow.style(*CAPTION_STYLE)
        flow.text(CAPTION_TEXT, align="center")
        flow.move_down(2)

        flow.divider()
        flow.move_down(1.5)

        flow.style(*DETAIL_STYLE)
        flow.text(f"Rastreo: {base_name or TRACE_PLACEHOLDER}")
        flow.move_down(0.3)
        flow.text(f"Archivo: {file_name or metrics.source_file_name}")
        flow.move_down(0.3)
        flow.text(f"Fecha: {format_local_timestamp(metrics.processed_at_utc, tz_name)}")

        c.showPage()
        c.save()
    except Exception as e:
        raise RenderError(f"No se pudo generar el PDF: {e}") from e

    return buf.getvalue()
