import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Mapping, Optional, Tuple

from errors import EmptyDocument, InputFileNotFound, MissingAttachments
from models import Metrics, TabularDocument
from pdf_export import render_summary_pdf
from xlsx_export import compose_report, decode_workbook, encode_workbook


stage_logger = logging.getLogger("uvicorn.error")

INPUT_FILE_MARKER = "internal_all"
DEFAULT_BASE_NAME = "resultado"
OUTPUT_SUFFIX = "_conteo_urls"

MISSING_ATTACHMENTS_MESSAGE = (
    "No se recibieron archivos. Asegurate de activar \"Enviar contenido de archivos\" "
    "en la configuracion del procesador."
)


@dataclass(frozen=True)
class ProcessResult:
    url_count: int
    metrics: Metrics
    # output file name -> raw bytes (xlsx first, then pdf)
    generated_files: Dict[str, bytes]

    @property
    def message(self) -> str:
        return f"Procesado completado: {self.url_count} URLs encontradas"


def find_input_file(names: Iterable[str]) -> str:
    """First name containing "internal_all" (case-insensitive) wins."""
    received = list(names)
    for name in received:
        if INPUT_FILE_MARKER in name.lower():
            return name
    raise InputFileNotFound(
        "No se encontro internal_all.xlsx en los archivos enviados. "
        "Archivos recibidos: " + ", ".join(received),
        received=received,
    )


def output_file_names(base_name: Optional[str] = None) -> Tuple[str, str]:
    base = base_name or DEFAULT_BASE_NAME
    return f"{base}{OUTPUT_SUFFIX}.xlsx", f"{base}{OUTPUT_SUFFIX}.pdf"


def extract_metrics(
    document: TabularDocument,
    source_file_name: str,
    processed_at: Optional[datetime] = None,
) -> Metrics:
    """Summarise the first sheet; the header row is not counted as a URL."""
    if not document.sheets:
        raise EmptyDocument("El archivo Excel no tiene hojas")

    sheet = document.sheets[0]
    if processed_at is None:
        processed_at = datetime.now(timezone.utc)
    elif processed_at.tzinfo is None:
        processed_at = processed_at.replace(tzinfo=timezone.utc)

    return Metrics(
        url_count=max(0, sheet.row_count - 1),
        source_sheet_name=sheet.name,
        column_count=sheet.column_count,
        source_file_name=source_file_name,
        processed_at_utc=processed_at,
    )


def process_attachments(
    file_contents: Optional[Mapping[str, bytes]],
    base_name: Optional[str] = None,
    *,
    processed_at: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> ProcessResult:
    """
    Count the URLs of the uploaded internal_all export and build both outputs.

    file_contents maps uploaded file names to raw (already base64-decoded)
    bytes. Any failure raises a ReportError subclass and nothing is returned.
    """
    if not file_contents:
        raise MissingAttachments(MISSING_ATTACHMENTS_MESSAGE)

    input_name = find_input_file(file_contents.keys())
    rid = request_id

    t = time.time()
    stage_logger.info("stage=decode_start request_id=%s file=%s", rid, input_name)
    document = decode_workbook(file_contents[input_name], filename=input_name)
    stage_logger.info(
        "stage=decode_end request_id=%s secs=%.2f sheets=%s",
        rid, time.time() - t, len(document.sheets),
    )

    if not document.sheets:
        raise EmptyDocument("El archivo Excel no tiene hojas")

    metrics = extract_metrics(document, input_name, processed_at=processed_at)
    stage_logger.info(
        "stage=metrics request_id=%s url_count=%s sheet=%s columns=%s",
        rid, metrics.url_count, metrics.source_sheet_name, metrics.column_count,
    )

    t = time.time()
    xlsx_bytes = encode_workbook(compose_report(document, metrics))
    stage_logger.info("stage=xlsx_end request_id=%s secs=%.2f bytes=%s", rid, time.time() - t, len(xlsx_bytes))

    t = time.time()
    pdf_bytes = render_summary_pdf(metrics, base_name=base_name, file_name=input_name)
    stage_logger.info("stage=pdf_end request_id=%s secs=%.2f bytes=%s", rid, time.time() - t, len(pdf_bytes))

    xlsx_name, pdf_name = output_file_names(base_name)
    return ProcessResult(
        url_count=metrics.url_count,
        metrics=metrics,
        generated_files={xlsx_name: xlsx_bytes, pdf_name: pdf_bytes},
    )
