import io

import pytest
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from conftest import FROZEN_AT, build_xlsx, crawl_rows
from errors import MalformedDocument
from models import Metrics
from xlsx_export import (
    SUMMARY_SHEET_TITLE,
    compose_report,
    decode_workbook,
    encode_workbook,
)


def _metrics(url_count=5, sheet="Data", columns=3, file_name="internal_all.xlsx"):
    return Metrics(
        url_count=url_count,
        source_sheet_name=sheet,
        column_count=columns,
        source_file_name=file_name,
        processed_at_utc=FROZEN_AT,
    )


# -----------------------------
# decode_workbook
# -----------------------------
def test_decode_keeps_sheet_order_and_rows():
    raw = build_xlsx([("Data", crawl_rows(3)), ("Other", [["x"]])])
    doc = decode_workbook(raw, "internal_all.xlsx")

    assert doc.sheet_names == ("Data", "Other")
    data = doc.sheets[0]
    assert data.row_count == 4
    assert data.column_count == 3
    assert data.rows[0] == ("Address", "Status Code", "Indexability")
    assert data.rows[1] == ("https://example.com/page-1", 200, "Indexable")


def test_decode_column_count_is_widest_row():
    raw = build_xlsx([("Data", [["a"], ["b", "c", "d", "e"], ["f", "g"]])])
    doc = decode_workbook(raw)
    assert doc.sheets[0].column_count == 4


def test_decode_empty_sheet_has_no_rows():
    doc = decode_workbook(build_xlsx([("Empty", [])]))
    assert doc.sheets[0].row_count == 0
    assert doc.sheets[0].column_count == 0


def test_decode_counts_interior_blank_rows():
    raw = build_xlsx([("Data", [["Address"], ["https://a"], [], ["https://b"]])])
    assert decode_workbook(raw).sheets[0].row_count == 4


def test_decode_ignores_styled_empty_trailing_rows():
    wb = Workbook()
    ws = wb.active
    ws.title = "Data"
    for row in crawl_rows(2):
        ws.append(row)
    ws.cell(row=20, column=5).font = Font(bold=True)
    buf = io.BytesIO()
    wb.save(buf)

    sheet = decode_workbook(buf.getvalue()).sheets[0]
    assert sheet.row_count == 3
    assert sheet.column_count == 3


def test_decode_rejects_garbage():
    with pytest.raises(MalformedDocument):
        decode_workbook(b"definitely not a zip container", "internal_all.xlsx")


def test_decode_rejects_empty_bytes():
    with pytest.raises(MalformedDocument):
        decode_workbook(b"", "internal_all.xlsx")


def test_decode_csv_export():
    raw = "\ufeffAddress,Status Code\nhttps://a,200\nhttps://b,\n".encode("utf-8")
    doc = decode_workbook(raw, "Internal_All.csv")

    assert doc.sheet_names == ("Internal_All",)
    sheet = doc.sheets[0]
    assert sheet.row_count == 3
    assert sheet.column_count == 2
    assert sheet.rows[0] == ("Address", "Status Code")
    assert sheet.rows[1] == ("https://a", "200")
    assert sheet.rows[2] == ("https://b",)
    # payload is an xlsx container
    assert load_workbook(io.BytesIO(doc.payload)).sheetnames == ["Internal_All"]


def test_decode_rejects_empty_csv():
    with pytest.raises(MalformedDocument):
        decode_workbook(b"\n", "internal_all.csv")


# -----------------------------
# compose_report / encode_workbook
# -----------------------------
def test_summary_sheet_is_appended_last(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx, "internal_all.xlsx")
    wb = compose_report(doc, _metrics())
    assert wb.sheetnames == ["Data", SUMMARY_SHEET_TITLE]


@pytest.mark.parametrize("n_urls", [0, 1, 250])
def test_summary_sheet_shape_is_fixed(n_urls):
    doc = decode_workbook(build_xlsx([("Data", crawl_rows(n_urls))]))
    wb = load_workbook(io.BytesIO(encode_workbook(compose_report(doc, _metrics(url_count=n_urls)))))
    ws = wb[SUMMARY_SHEET_TITLE]

    assert ws.max_row == 7
    assert ws.max_column == 2
    assert [c.value for c in ws[1]] == ["Metrica", "Valor"]


def test_summary_sheet_values(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx, "internal_all.xlsx")
    out = encode_workbook(compose_report(doc, _metrics()))
    ws = load_workbook(io.BytesIO(out))[SUMMARY_SHEET_TITLE]

    rows = [tuple(r) for r in ws.iter_rows(min_row=2, values_only=True)]
    assert rows == [
        ("Total de URLs", 5),
        ("Hoja de origen", "Data"),
        ("Columnas en el archivo", 3),
        ("Archivo procesado", "internal_all.xlsx"),
        ("Fecha de procesado", "2026-10-19T08:30:05.123Z"),
        ("Procesado por", "Vercel Processor Test"),
    ]


def test_processor_label_can_be_overridden(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx, "internal_all.xlsx")
    out = encode_workbook(compose_report(doc, _metrics(), processor_label="Staging Processor"))
    ws = load_workbook(io.BytesIO(out))[SUMMARY_SHEET_TITLE]
    assert ws["A7"].value == "Procesado por"
    assert ws["B7"].value == "Staging Processor"


def test_summary_sheet_styling_survives_save(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx)
    ws = load_workbook(io.BytesIO(encode_workbook(compose_report(doc, _metrics()))))[SUMMARY_SHEET_TITLE]

    for cell in ws[1]:
        assert cell.font.bold
        assert cell.font.color.rgb == "FFFFFFFF"
        assert cell.fill.fill_type == "solid"
        assert cell.fill.fgColor.rgb == "FF3B82F6"

    for r in range(2, 8):
        assert ws.cell(row=r, column=1).font.bold
        assert not ws.cell(row=r, column=2).font.bold
        striped = ws.cell(row=r, column=2).fill
        if r % 2 == 0:
            assert striped.fill_type == "solid"
            assert striped.fgColor.rgb == "FFF1F5F9"
        else:
            assert striped.fill_type is None

    assert ws.column_dimensions["A"].width == 35
    assert ws.column_dimensions["B"].width == 20


def test_compose_leaves_original_content_intact():
    rows = crawl_rows(4)
    raw = build_xlsx([("Data", rows), ("Notes", [["keep me", 1.5]])])
    doc = decode_workbook(raw)
    payload_before = doc.payload

    out = load_workbook(io.BytesIO(encode_workbook(compose_report(doc, _metrics(url_count=4)))))

    assert doc.payload == payload_before
    assert [list(r) for r in out["Data"].iter_rows(values_only=True)] == rows
    assert [list(r) for r in out["Notes"].iter_rows(values_only=True)] == [["keep me", 1.5]]


def test_compose_is_repeatable(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx)
    first = load_workbook(io.BytesIO(encode_workbook(compose_report(doc, _metrics()))))
    second = load_workbook(io.BytesIO(encode_workbook(compose_report(doc, _metrics()))))

    def values(wb):
        return [list(r) for r in wb[SUMMARY_SHEET_TITLE].iter_rows(values_only=True)]

    assert values(first) == values(second)
    assert second.sheetnames == ["Data", SUMMARY_SHEET_TITLE]


def test_round_trip_without_changes(crawl_xlsx):
    doc = decode_workbook(crawl_xlsx)
    again = decode_workbook(encode_workbook(load_workbook(io.BytesIO(doc.payload))))
    assert again.sheets == doc.sheets
