"""CSV and Excel export of dashboard table rows."""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import Any, Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter


EXPORT_FORMATS = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def export_columns(form: dict, visible_columns: Sequence[str] | None = None) -> List[str]:
    fields = list((form.get("fields") or {}).keys())
    chosen = [c for c in (visible_columns or []) if c == "id" or c in fields]
    return chosen or ["id", *fields]


def select_rows(records: Iterable[dict], selected_ids: Sequence[str] | None = None) -> List[dict]:
    rows = [r for r in records if isinstance(r, dict)]
    if not selected_ids:
        return rows
    wanted = {str(i) for i in selected_ids}
    return [r for r in rows if str(r.get("id")) in wanted]


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, list):
        return "; ".join(str(_cell(v)) for v in value)
    return str(value)


def export_filename(name: str, fmt: str, today: date | None = None) -> str:
    return f"{name}_{(today or date.today()).isoformat()}.{fmt}"


def rows_to_csv(rows: Iterable[dict], columns: Sequence[str]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(list(columns))
    for row in rows:
        writer.writerow([_cell(row.get(col)) for col in columns])
    return buf.getvalue().encode("utf-8-sig")


def rows_to_xlsx(rows: Iterable[dict], columns: Sequence[str], title: str = "Data") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill("solid", fgColor="D9E2EC")
    header_font = Font(bold=True)
    for col, name in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=col, value=name)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(col)].width = max(12, len(name) + 2)

    for i, row in enumerate(rows, start=2):
        for col, name in enumerate(columns, start=1):
            ws.cell(i, col, _cell(row.get(name)))

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def export_rows(rows: Iterable[dict], columns: Sequence[str], fmt: str, title: str = "Data") -> bytes:
    if fmt == "csv":
        return rows_to_csv(rows, columns)
    if fmt == "xlsx":
        return rows_to_xlsx(rows, columns, title)
    raise ValueError(f"Unsupported export format: {fmt}")
