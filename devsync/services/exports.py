from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Literal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy.orm import Session

from devsync.services.attendance_calc import local_time
from devsync.services.reports import ReportWindow, attendance_detail_rows, attendance_summary_rows

ReportType = Literal["summary", "detailed"]

SUMMARY_HEADERS = [
    "Employee",
    "Email",
    "Department",
    "Days",
    "Hours",
    "Avg Productivity",
    "Late Arrivals",
]

DETAIL_HEADERS = [
    "Date",
    "Employee",
    "Email",
    "Department",
    "Check In",
    "Check Out",
    "Status",
    "Hours",
    "Net (hh:mm)",
    "Productivity",
    "Mood",
    "Remote",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF4F9")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FCFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def _to_excel_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return local_time(value).strftime("%H:%M")


def _minutes_to_hhmm(minutes: int) -> str:
    value = max(0, int(minutes))
    return f"{value // 60:02d}:{value % 60:02d}"


def _style_header(ws: Worksheet, row: int) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _write_metadata(ws: Worksheet, *, title: str, rows: list[tuple[str, str]]) -> int:
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=6)
    title_cell = ws.cell(row=1, column=1, value=title)
    title_cell.font = TITLE_FONT
    title_cell.alignment = Alignment(horizontal="left", vertical="center")

    row_idx = 2
    for label, value in rows:
        label_cell = ws.cell(row=row_idx, column=1, value=label)
        value_cell = ws.cell(row=row_idx, column=2, value=value)
        label_cell.font = BOLD_FONT
        label_cell.fill = META_LABEL_FILL
        label_cell.border = THIN_BORDER
        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.border = THIN_BORDER
        row_idx += 1
    return row_idx + 1


def _style_table(ws: Worksheet, *, header_row: int, data_end_row: int, warn_col: int | None = None) -> None:
    ws.freeze_panes = f"A{header_row + 1}"
    if data_end_row <= header_row:
        return
    ws.auto_filter.ref = f"A{header_row}:{get_column_letter(ws.max_column)}{data_end_row}"
    for row_idx in range(header_row + 1, data_end_row + 1):
        row_fill = ZEBRA_FILL if row_idx % 2 == 0 else None
        if warn_col is not None:
            status_value = ws.cell(row=row_idx, column=warn_col).value
            if isinstance(status_value, str) and status_value in {"late", "half-day", "absent"}:
                row_fill = WARNING_FILL
        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill is not None:
                cell.fill = row_fill
            if isinstance(cell.value, (int, float)):
                cell.alignment = Alignment(horizontal="center", vertical="center")
            else:
                cell.alignment = Alignment(horizontal="left", vertical="center")


def _build_summary_sheet(ws: Worksheet, db: Session, window: ReportWindow, department: str | None) -> None:
    rows = attendance_summary_rows(db, window, department=department)
    header_row = _write_metadata(
        ws,
        title="Attendance Summary",
        rows=[
            ("Date range", f"{window.start_key} - {window.end_key}"),
            ("Department", department or "all"),
            ("Employees", str(len(rows))),
        ],
    )
    for col_idx, header in enumerate(SUMMARY_HEADERS, start=1):
        ws.cell(row=header_row, column=col_idx, value=header)
    _style_header(ws, header_row)

    row_idx = header_row
    for row in rows:
        row_idx += 1
        values = [
            row.user_name,
            row.user_email,
            row.department,
            row.total_days,
            row.total_hours,
            row.avg_productivity if row.avg_productivity is not None else "-",
            row.late_arrivals,
        ]
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)
    _style_table(ws, header_row=header_row, data_end_row=row_idx)


def _build_detail_sheet(ws: Worksheet, db: Session, window: ReportWindow, department: str | None) -> None:
    rows = attendance_detail_rows(db, window, department=department)
    header_row = _write_metadata(
        ws,
        title="Attendance Records",
        rows=[
            ("Date range", f"{window.start_key} - {window.end_key}"),
            ("Department", department or "all"),
            ("Records", str(len(rows))),
        ],
    )
    for col_idx, header in enumerate(DETAIL_HEADERS, start=1):
        ws.cell(row=header_row, column=col_idx, value=header)
    _style_header(ws, header_row)

    row_idx = header_row
    for row in rows:
        row_idx += 1
        values = [
            row.date,
            row.user.name,
            row.user.email,
            row.user.department,
            _to_excel_time(row.check_in),
            _to_excel_time(row.check_out),
            row.status.value,
            row.total_hours,
            _minutes_to_hhmm(row.net_minutes),
            row.productivity_score if row.productivity_score is not None else "-",
            row.mood.value if row.mood is not None else "-",
            "yes" if row.is_remote else "no",
        ]
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)
    _style_table(ws, header_row=header_row, data_end_row=row_idx, warn_col=DETAIL_HEADERS.index("Status") + 1)


def build_attendance_report_xlsx_bytes(
    db: Session,
    *,
    window: ReportWindow,
    report_type: ReportType = "summary",
    department: str | None = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    if report_type == "detailed":
        ws.title = "Records"
        _build_detail_sheet(ws, db, window, department)
    else:
        ws.title = "Summary"
        _build_summary_sheet(ws, db, window, department)
    _auto_width(ws)

    wb.properties.creator = "Devsync"
    wb.properties.created = datetime.now(timezone.utc).replace(tzinfo=None)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
