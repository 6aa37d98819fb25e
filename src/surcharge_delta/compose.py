"""Changes-only output — superseded/superseding record pairs per sheet."""

from __future__ import annotations

from collections.abc import Sequence

from surcharge_delta import ACTIVE_FROM_COLUMN, ACTIVE_TO_COLUMN
from surcharge_delta.columns import resolve_column
from surcharge_delta.errors import NoChangesError
from surcharge_delta.models import ChangeRecord, ChangeSet, Dataset, TabularSheet

OUTPUT_FILENAME_PREFIX = "PayorAgreement_Changes_"


def output_filename(change_set: ChangeSet) -> str:
    """Return ``PayorAgreement_Changes_<comparison date>.xlsx``."""
    return f"{OUTPUT_FILENAME_PREFIX}{change_set.date_iso}.xlsx"


def _validity_header(header: Sequence[str]) -> tuple[list[str], int, int]:
    """Return the output header and the ACTIVETO / ACTIVEFROM positions.

    Existing columns are reused; missing ones are appended, ACTIVETO first.
    """
    out = list(header)
    active_to = resolve_column(out, ACTIVE_TO_COLUMN)
    active_from = resolve_column(out, ACTIVE_FROM_COLUMN)
    if active_to is None:
        out.append(ACTIVE_TO_COLUMN)
        active_to = len(out) - 1
    if active_from is None:
        out.append(ACTIVE_FROM_COLUMN)
        active_from = len(out) - 1
    return out, active_to, active_from


def _stamp(row: Sequence[str], width: int, col: int, value: str, blank_col: int) -> list[str]:
    out = list(row)
    if len(out) < width:
        out.extend([""] * (width - len(out)))
    out[col] = value
    out[blank_col] = ""
    return out


def _changed_sheet(
    name: str, header: Sequence[str], changes: list[ChangeRecord], today: str
) -> TabularSheet:
    out_header, active_to, active_from = _validity_header(header)
    width = len(out_header)

    rows: list[list[str]] = [out_header]
    # Superseded versions close on the comparison date...
    for change in changes:
        rows.append(_stamp(change.old_row, width, active_to, today, active_from))
    # ...and their replacements open on it.
    for change in changes:
        rows.append(_stamp(change.new_row, width, active_from, today, active_to))
    return TabularSheet(name=name, rows=rows)


def compose_output(old: Dataset, change_set: ChangeSet) -> Dataset:
    """Build the changes-only dataset in the old dataset's sheet order.

    Compared sheets with at least one change hold only the old rows (ACTIVETO
    set to the comparison date) followed by the new rows (ACTIVEFROM set to
    it).  Every other sheet is copied unchanged.

    Raises
    ------
    NoChangesError
        If *change_set* holds no changed records.
    """
    if not change_set.has_changes:
        raise NoChangesError("No price changes detected. Nothing to export.")

    today = change_set.date_iso
    compared = set(change_set.sheets_compared)
    sheets: dict[str, TabularSheet] = {}
    for name in old.sheet_names:
        old_sheet = old[name]
        changes = change_set.changes_for(name) if name in compared else []
        if not changes:
            sheets[name] = TabularSheet(name=name, rows=[list(row) for row in old_sheet.rows])
            continue
        sheets[name] = _changed_sheet(name, old_sheet.header, changes, today)

    return Dataset(sheets=sheets, sheet_names=list(old.sheet_names))
