"""Excel report writer — produces Comparison_Report.xlsx."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from surcharge_delta.io import style_header
from surcharge_delta.models import ChangeSet

REPORT_FILENAME = "Comparison_Report.xlsx"

# ── Style constants ──────────────────────────────────────────────

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)

CHANGED_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
KPI_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")

INT_FMT = '#,##0'

SUMMARY_COLUMNS = ["sheet", "total", "found", "not_found", "changed", "unchanged"]
CHANGES_COLUMNS = ["sheet", "key1", "key2", "old_surcharge", "new_surcharge"]

_AUTO_WIDTH_SAMPLE_ROWS = 300


# ── Frames ───────────────────────────────────────────────────────


def summary_frame(change_set: ChangeSet) -> pd.DataFrame:
    """One row per compared sheet, in comparison order."""
    if not change_set.sheets_compared:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    records = [
        {"sheet": name, **change_set.summaries[name].to_dict()}
        for name in change_set.sheets_compared
    ]
    return pd.DataFrame.from_records(records, columns=SUMMARY_COLUMNS)


def changes_frame(change_set: ChangeSet) -> pd.DataFrame:
    """One row per change record, keys rendered as ``NAME=value``."""
    if not change_set.changes:
        return pd.DataFrame(columns=CHANGES_COLUMNS)
    records = [
        {
            "sheet": change.sheet,
            "key1": f"{change.key1_name}={change.key1}",
            "key2": f"{change.key2_name}={change.key2}",
            "old_surcharge": change.old_value,
            "new_surcharge": change.new_value,
        }
        for change in change_set.changes
    ]
    return pd.DataFrame.from_records(records, columns=CHANGES_COLUMNS)


# ── Helpers ──────────────────────────────────────────────────────


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 40)


def _sanitize_table_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not cleaned:
        cleaned = "Table"
    if not re.match(r"^[A-Za-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return cleaned[:255]


def _unique_table_name(ws: Worksheet, base_name: str) -> str:
    parent = ws.parent
    if parent is None:
        return base_name

    existing: set[str] = set()
    for sheet in parent.worksheets:
        existing.update(cast(Iterable[str], sheet.tables.keys()))
    if base_name not in existing:
        return base_name

    suffix = 1
    while True:
        suffix_str = f"_{suffix}"
        candidate = f"{base_name[: 255 - len(suffix_str)]}{suffix_str}"
        if candidate not in existing:
            return candidate
        suffix += 1


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int, first_row: int) -> None:
    """Turn the data range into a proper Excel Table object."""
    if nrows < 1 or ncols < 1:
        return
    end_col = get_column_letter(ncols)
    ref = f"A{first_row}:{end_col}{first_row + nrows}"
    table = Table(displayName=_unique_table_name(ws, _sanitize_table_name(name)), ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val
    item = getattr(val, "item", None)
    if callable(item):
        return item()
    return val


def _df_to_rows(ws: Worksheet, df: pd.DataFrame, first_row: int) -> None:
    col_names = list(df.columns)
    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=first_row, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), first_row + 1):
        for c_idx, val in enumerate(row_vals, 1):
            cell = ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
            if isinstance(cell.value, int):
                cell.number_format = INT_FMT
    style_header(ws, len(col_names), row=first_row)


def _write_summary(wb: Workbook, change_set: ChangeSet) -> None:
    ws = wb.create_sheet(title="Summary")

    # ── Title ────────────────────────────────────────────────────
    ws.cell(row=1, column=1, value="surcharge-delta — Comparison").font = TITLE_FONT
    ws.merge_cells("A1:F1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:F2")

    # ── Headline figures ─────────────────────────────────────────
    totals = change_set.totals()
    headline: list[tuple[str, object]] = [
        ("Comparison Date", change_set.date_iso),
        ("Sheets Compared", len(change_set.sheets_compared)),
        ("Changed Records", len(change_set.changes)),
        ("Not Found", totals.not_found),
    ]
    row = 4
    for label, value in headline:
        lbl_cell = ws.cell(row=row, column=1, value=label)
        lbl_cell.font = LABEL_FONT
        lbl_cell.fill = KPI_FILL
        val_cell = ws.cell(row=row, column=2, value=value)
        val_cell.font = VALUE_FONT
        val_cell.fill = KPI_FILL
        val_cell.alignment = Alignment(horizontal="right")
        row += 1

    # ── Per-sheet table ──────────────────────────────────────────
    row += 1
    df = summary_frame(change_set)
    _df_to_rows(ws, df, first_row=row)
    for offset, changed in enumerate(df["changed"].tolist(), 1):
        if changed:
            for c in range(1, len(SUMMARY_COLUMNS) + 1):
                ws.cell(row=row + offset, column=c).fill = CHANGED_FILL
    _auto_width(ws)


def _write_changes(wb: Workbook, change_set: ChangeSet) -> None:
    ws = wb.create_sheet(title="Changes")
    df = changes_frame(change_set)
    _df_to_rows(ws, df, first_row=1)
    ws.freeze_panes = "A2"
    _auto_width(ws)
    if len(df) > 0:
        _add_excel_table(ws, "Changes", len(CHANGES_COLUMNS), len(df), first_row=1)


# ── Public API ───────────────────────────────────────────────────


def write_comparison_report(out_dir: Path, change_set: ChangeSet) -> Path:
    """Write ``Comparison_Report.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_FILENAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_summary(wb, change_set)
    _write_changes(wb, change_set)

    tmp_path = out_dir / "Comparison_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
