import io
import os
import re
from pathlib import PurePath
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from errors import MalformedDocument, SerializationError
from models import Metrics, Sheet, TabularDocument


PROCESSOR_LABEL = os.getenv("PROCESSOR_LABEL", "Vercel Processor Test")

SUMMARY_SHEET_TITLE = "Conteo URLs"
SUMMARY_HEADERS = ["Metrica", "Valor"]
SUMMARY_COLUMN_WIDTHS = {"A": 35, "B": 20}

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF3B82F6")
STRIPE_FILL = PatternFill(fill_type="solid", fgColor="FFF1F5F9")
METRIC_NAME_FONT = Font(bold=True)

_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


# -----------------------------
# Decode
# -----------------------------
def _is_empty(v: Any) -> bool:
    return v is None or (isinstance(v, str) and v == "")


def _trim_row(values: Sequence[Any]) -> Tuple[Any, ...]:
    end = len(values)
    while end and _is_empty(values[end - 1]):
        end -= 1
    return tuple(values[:end])


def _sheet_rows(ws: Worksheet) -> Tuple[Tuple[Any, ...], ...]:
    rows: List[Tuple[Any, ...]] = []
    last_filled = 0
    for values in ws.iter_rows(values_only=True):
        trimmed = _trim_row(values)
        rows.append(trimmed)
        if trimmed:
            last_filled = len(rows)
    return tuple(rows[:last_filled])


def _sheet_title_from_filename(filename: Optional[str]) -> str:
    stem = PurePath(filename or "").stem
    title = _INVALID_SHEET_CHARS.sub("_", stem).strip()
    return title[:31] or "Sheet1"


def _csv_to_xlsx(raw_bytes: bytes, sheet_name: str) -> bytes:
    try:
        df = pd.read_csv(
            io.BytesIO(raw_bytes),
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            low_memory=False,
        )
    except Exception as e:
        raise MalformedDocument(f"No se pudo leer el archivo CSV: {e}") from e

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append([str(c) for c in df.columns])
    for row in df.itertuples(index=False, name=None):
        ws.append([None if _is_empty(v) else v for v in row])
    return encode_workbook(wb)


def decode_workbook(raw_bytes: bytes, filename: Optional[str] = None) -> TabularDocument:
    """
    Read an uploaded spreadsheet into a TabularDocument.

    .csv uploads are parsed with pandas and converted to a one-sheet xlsx
    container; anything else is treated as an xlsx container as-is.
    Raises MalformedDocument when the bytes cannot be parsed.
    """
    if not raw_bytes:
        raise MalformedDocument("El archivo recibido esta vacio")

    name = (filename or "").lower()
    if name.endswith(".csv"):
        payload = _csv_to_xlsx(raw_bytes, sheet_name=_sheet_title_from_filename(filename))
    else:
        payload = raw_bytes

    try:
        wb = load_workbook(io.BytesIO(payload), data_only=True)
    except Exception as e:
        raise MalformedDocument(f"No se pudo leer el archivo Excel: {e}") from e

    try:
        sheets = tuple(Sheet(name=ws.title, rows=_sheet_rows(ws)) for ws in wb.worksheets)
    finally:
        wb.close()

    return TabularDocument(payload=payload, sheets=sheets)


# -----------------------------
# Compose
# -----------------------------
def summary_rows(metrics: Metrics, processor_label: str = PROCESSOR_LABEL) -> List[Tuple[str, Any]]:
    return [
        ("Total de URLs", metrics.url_count),
        ("Hoja de origen", metrics.source_sheet_name),
        ("Columnas en el archivo", metrics.column_count),
        ("Archivo procesado", metrics.source_file_name),
        ("Fecha de procesado", metrics.processed_at_iso),
        ("Procesado por", processor_label),
    ]


def compose_report(
    document: TabularDocument,
    metrics: Metrics,
    processor_label: str = PROCESSOR_LABEL,
) -> Workbook:
    """
    Build a fresh workbook holding every original sheet plus a trailing
    "Conteo URLs" summary sheet (header + 6 metric rows, 2 columns).

    The workbook is loaded anew from document.payload, so the decoded
    document is never touched.
    """
    try:
        wb = load_workbook(io.BytesIO(document.payload))
    except Exception as e:
        raise MalformedDocument(f"No se pudo leer el archivo Excel: {e}") from e

    ws = wb.create_sheet(title=SUMMARY_SHEET_TITLE)

    ws.append(SUMMARY_HEADERS)
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    for label, value in summary_rows(metrics, processor_label):
        ws.append([label, value])

    # Data rows start at 2; even sheet rows get the stripe
    for r in range(2, ws.max_row + 1):
        ws.cell(row=r, column=1).font = METRIC_NAME_FONT
        if r % 2 == 0:
            for cell in ws[r]:
                cell.fill = STRIPE_FILL

    for letter, width in SUMMARY_COLUMN_WIDTHS.items():
        ws.column_dimensions[letter].width = width

    return wb


# -----------------------------
# Encode
# -----------------------------
def encode_workbook(wb: Workbook) -> bytes:
    buf = io.BytesIO()
    try:
        wb.save(buf)
    except Exception as e:
        raise SerializationError(f"No se pudo generar el Excel: {e}") from e
    return buf.getvalue()
