"""I/O helpers — decode/encode workbooks, write JSON artifacts."""

from __future__ import annotations

import json
import zipfile
from datetime import date, datetime, time
from io import BytesIO
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from surcharge_delta.errors import UnreadableWorkbookError
from surcharge_delta.models import Dataset, TabularSheet

WORKBOOK_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
DATE_FMT = "%Y-%m-%d"

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

# ── Decoding ─────────────────────────────────────────────────────


def cell_text(value: Any) -> str:
    """Render a decoded cell value as the text the engine compares."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (datetime, date)):
        return value.strftime(DATE_FMT)
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _sheet_rows(ws: Any) -> list[list[str]]:
    rows = [[cell_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
    while rows and not any(rows[-1]):
        rows.pop()
    width = max((len(r) for r in rows), default=0)
    for row in rows:
        if len(row) < width:
            row.extend([""] * (width - len(row)))
    return rows


def load_dataset(data: bytes) -> Dataset:
    """Decode workbook *data* into a :class:`Dataset`, keeping sheet order.

    Raises
    ------
    UnreadableWorkbookError
        If *data* is not a readable workbook.
    """
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise UnreadableWorkbookError(f"Could not read workbook: {exc}") from exc

    try:
        sheets: dict[str, TabularSheet] = {}
        for ws in wb.worksheets:
            sheets[ws.title] = TabularSheet(name=ws.title, rows=_sheet_rows(ws))
    except (zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise UnreadableWorkbookError(f"Could not read workbook: {exc}") from exc
    finally:
        wb.close()
    return Dataset(sheets=sheets, sheet_names=list(sheets))


def load_dataset_file(path: Path) -> Dataset:
    """Load a workbook file from disk.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is a directory or its extension is not a workbook format.
    UnreadableWorkbookError
        If the file cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")

    suffix = path.suffix.lower()
    if suffix not in WORKBOOK_SUFFIXES:
        raise ValueError(f"Unsupported file type: {suffix!r}. Use .xlsx")
    return load_dataset(path.read_bytes())


# ── Encoding ─────────────────────────────────────────────────────


def style_header(ws: Worksheet, ncols: int, row: int = 1) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=row, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _write_sheet(wb: Workbook, sheet: TabularSheet) -> None:
    ws = wb.create_sheet(title=sheet.name)
    for r_idx, row in enumerate(sheet.rows, 1):
        for c_idx, value in enumerate(row, 1):
            if value == "":
                continue
            cell = ws.cell(row=r_idx, column=c_idx, value=value)
            if value.startswith("="):
                # keep formula-looking text as literal text
                cell.data_type = "s"
    if sheet.rows and sheet.header:
        style_header(ws, len(sheet.header))
        ws.freeze_panes = "A2"


def save_dataset(dataset: Dataset) -> bytes:
    """Encode *dataset* as ``.xlsx`` bytes, one worksheet per sheet in order."""
    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet
    for sheet in dataset:
        _write_sheet(wb, sheet)
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def write_dataset_file(path: Path, dataset: Dataset) -> Path:
    """Write *dataset* to *path* as a workbook (atomic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    tmp_path.write_bytes(save_dataset(dataset))
    tmp_path.replace(path)
    return path


# ── JSON ─────────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
