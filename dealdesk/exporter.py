"""Export diligence tracker progress as CSV or XLSX."""
from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable
from datetime import date

import openpyxl
from openpyxl.styles import Font

log = logging.getLogger(__name__)

# (column header, key in tracker_progress rows)
TRACKER_COLUMNS: tuple[tuple[str, str], ...] = (
    ("Company", "company_name"),
    ("Deal Title", "title"),
    ("Status", "status"),
    ("Total Requests", "total_requests"),
    ("Completed", "completed_requests"),
    ("Progress %", "progress_percentage"),
)

EXPORT_FORMATS = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _cells(row: dict) -> list:
    return ["" if row.get(key) is None else row[key] for _, key in TRACKER_COLUMNS]


def tracker_csv(rows: Iterable[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow([header for header, _ in TRACKER_COLUMNS])
    for row in rows:
        writer.writerow(_cells(row))
    return buf.getvalue()


def tracker_xlsx(rows: Iterable[dict]) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Diligence Trackers"
    ws.append([header for header, _ in TRACKER_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    count = 0
    for row in rows:
        ws.append(_cells(row))
        count += 1
    for col, (header, _) in zip(ws.columns, TRACKER_COLUMNS):
        width = max(len(str(c.value or "")) for c in col)
        ws.column_dimensions[col[0].column_letter].width = max(width, len(header)) + 2
    buf = io.BytesIO()
    wb.save(buf)
    log.info("Exported %d tracker rows to XLSX", count)
    return buf.getvalue()


def export_filename(fmt: str, today: date | None = None) -> str:
    stamp = (today or date.today()).isoformat()
    return f"diligence-trackers-{stamp}.{fmt}"


def export_trackers(rows: Iterable[dict], fmt: str) -> tuple[bytes, str]:
    """Render rows in *fmt*; returns ``(content, media type)``.

    Raises ValueError for an unsupported format.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}' (expected csv or xlsx)")
    if fmt == "csv":
        return tracker_csv(rows).encode("utf-8"), EXPORT_FORMATS[fmt]
    return tracker_xlsx(rows), EXPORT_FORMATS[fmt]
