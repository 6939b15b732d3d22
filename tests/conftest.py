import io
from datetime import datetime, timezone

import pytest
from openpyxl import Workbook


FROZEN_AT = datetime(2026, 10, 19, 8, 30, 5, 123000, tzinfo=timezone.utc)


def build_xlsx(sheets):
    """sheets: list of (title, rows) -> xlsx bytes"""
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets:
        ws = wb.create_sheet(title=title)
        for row in rows:
            ws.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def crawl_rows(n_urls):
    header = ["Address", "Status Code", "Indexability"]
    return [header] + [[f"https://example.com/page-{i}", 200, "Indexable"] for i in range(1, n_urls + 1)]


@pytest.fixture
def frozen_at():
    return FROZEN_AT


@pytest.fixture
def crawl_xlsx():
    return build_xlsx([("Data", crawl_rows(5))])
