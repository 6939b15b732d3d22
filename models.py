from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Sheet:
    """One worksheet as read from the upload.

    rows keep their original order; each row is trimmed of trailing empty
    cells and trailing empty rows are dropped, so row_count is the position
    of the last row that holds any value.
    """

    name: str
    rows: Tuple[Tuple[Any, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)


@dataclass(frozen=True)
class TabularDocument:
    # xlsx container the sheets were read from (CSV uploads are converted first)
    payload: bytes
    sheets: Tuple[Sheet, ...]

    @property
    def sheet_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.sheets)


@dataclass(frozen=True)
class Metrics:
    url_count: int
    source_sheet_name: str
    column_count: int
    source_file_name: str
    processed_at_utc: datetime

    @property
    def processed_at_iso(self) -> str:
        # 2026-10-19T10:00:00.000Z
        ts = self.processed_at_utc.astimezone(timezone.utc)
        return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "urlCount": self.url_count,
            "sheetName": self.source_sheet_name,
            "columnCount": self.column_count,
            "fileName": self.source_file_name,
            "processedAt": self.processed_at_iso,
        }
