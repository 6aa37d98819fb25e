"""Record matching + change detection — pure functions, no side effects."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import Literal

from surcharge_delta import TRACKED_COLUMN
from surcharge_delta.columns import (
    DEFAULT_KEY_RULES,
    KeyColumns,
    KeyRule,
    normalize_cell,
    resolve_column,
    resolve_key_columns,
    select_keys,
)
from surcharge_delta.errors import DuplicateKeyError, MissingDatasetError
from surcharge_delta.models import (
    ChangeRecord,
    ChangeSet,
    CompositeKey,
    Dataset,
    IndexedRecord,
    SheetSummary,
    TabularSheet,
)
from surcharge_delta.utils import utc_today

logger = logging.getLogger(__name__)

DuplicateKeyPolicy = Literal["last", "first", "reject"]
_DUPLICATE_POLICIES = ("last", "first", "reject")

# header + at least one data row
MIN_SHEET_ROWS = 2


# ── RecordIndex ──────────────────────────────────────────────────


def _row_key(sheet: TabularSheet, row_index: int, keys: KeyColumns) -> CompositeKey | None:
    key1 = normalize_cell(sheet.cell(row_index, keys.key1_index))
    key2 = normalize_cell(sheet.cell(row_index, keys.key2_index))
    if not key1 or not key2:
        return None
    return CompositeKey.of(key1, key2)


def build_record_index(
    sheet: TabularSheet,
    keys: KeyColumns,
    value_col: int,
    *,
    duplicate_keys: DuplicateKeyPolicy = "last",
) -> dict[CompositeKey, IndexedRecord]:
    """Index every data row of *sheet* with both key cells non-blank.

    Later rows overwrite earlier ones under the default ``last`` policy;
    ``first`` keeps the earliest row and ``reject`` raises
    :class:`DuplicateKeyError`.
    """
    if duplicate_keys not in _DUPLICATE_POLICIES:
        raise ValueError(f"Invalid duplicate-key policy: {duplicate_keys!r}. Use last/first/reject.")

    index: dict[CompositeKey, IndexedRecord] = {}
    for row_index in range(1, sheet.row_count):
        key = _row_key(sheet, row_index, keys)
        if key is None:
            continue
        if key in index:
            if duplicate_keys == "reject":
                raise DuplicateKeyError(sheet.name, key.serialize())
            logger.debug(
                "Duplicate key %s in sheet %r (row %d); keeping %s occurrence",
                key.serialize(),
                sheet.name,
                row_index,
                duplicate_keys,
            )
            if duplicate_keys == "first":
                continue
        index[key] = IndexedRecord(
            key=key,
            row_index=row_index,
            row=tuple(sheet.rows[row_index]),
            key1=sheet.cell(row_index, keys.key1_index),
            key2=sheet.cell(row_index, keys.key2_index),
            tracked_value=normalize_cell(sheet.cell(row_index, value_col)),
        )
    return index


# ── Comparator ───────────────────────────────────────────────────


def _common_sheet_names(old: Dataset, new: Dataset) -> list[str]:
    return [name for name in old.sheet_names if name in new]


def _compare_sheet(
    old_sheet: TabularSheet,
    new_sheet: TabularSheet,
    keys: KeyColumns,
    value_col: int,
    *,
    duplicate_keys: DuplicateKeyPolicy,
) -> tuple[SheetSummary, list[ChangeRecord]]:
    index = build_record_index(old_sheet, keys, value_col, duplicate_keys=duplicate_keys)
    header = tuple(old_sheet.header)

    found = not_found = changed = unchanged = 0
    changes: list[ChangeRecord] = []
    for row_index in range(1, new_sheet.row_count):
        key = _row_key(new_sheet, row_index, keys)
        if key is None:
            continue

        old_record = index.get(key)
        if old_record is None:
            not_found += 1
            continue

        found += 1
        new_value = normalize_cell(new_sheet.cell(row_index, value_col))
        if old_record.tracked_value == new_value:
            unchanged += 1
            continue

        changed += 1
        changes.append(
            ChangeRecord(
                sheet=old_sheet.name,
                key1_name=keys.key1_name,
                key2_name=keys.key2_name,
                key1=new_sheet.cell(row_index, keys.key1_index),
                key2=new_sheet.cell(row_index, keys.key2_index),
                header=header,
                old_row=old_record.row,
                new_row=tuple(new_sheet.rows[row_index]),
                old_value=old_record.tracked_value,
                new_value=new_value,
            )
        )

    summary = SheetSummary(
        total=new_sheet.row_count - 1,
        found=found,
        not_found=not_found,
        changed=changed,
        unchanged=unchanged,
    )
    return summary, changes


def compare_datasets(
    old: Dataset | None,
    new: Dataset | None,
    *,
    today: date | None = None,
    tracked_column: str = TRACKED_COLUMN,
    key_rules: Iterable[KeyRule] = DEFAULT_KEY_RULES,
    duplicate_keys: DuplicateKeyPolicy = "last",
) -> ChangeSet:
    """Match new records against old ones, sheet by sheet.

    Only sheets present in both datasets are considered, in the old
    dataset's order.  A sheet is compared when both sides have a header and
    at least one data row, the old header has a *tracked_column* match and
    the sheet name selects key columns that the old header contains.

    Raises
    ------
    MissingDatasetError
        If either dataset is ``None``.
    DuplicateKeyError
        If *duplicate_keys* is ``"reject"`` and an old sheet repeats a key.
    """
    if old is None or new is None:
        missing = "old" if old is None else "new"
        raise MissingDatasetError(f"Both datasets are required; the {missing} dataset is missing")

    rules = tuple(key_rules)
    sheets_compared: list[str] = []
    summaries: dict[str, SheetSummary] = {}
    changes: list[ChangeRecord] = []

    for name in _common_sheet_names(old, new):
        old_sheet, new_sheet = old[name], new[name]
        if old_sheet.row_count < MIN_SHEET_ROWS or new_sheet.row_count < MIN_SHEET_ROWS:
            logger.debug("Sheet %r has no data rows on one side; skipping", name)
            continue

        header = old_sheet.header
        value_col = resolve_column(header, tracked_column)
        if value_col is None:
            if select_keys(name, rules) is not None:
                logger.warning("Column %s not found in sheet %r; skipping", tracked_column, name)
            else:
                logger.debug("Sheet %r has no %s column; skipping", name, tracked_column)
            continue

        keys = resolve_key_columns(name, header, rules)
        if keys is None:
            continue

        sheets_compared.append(name)
        summary, sheet_changes = _compare_sheet(
            old_sheet, new_sheet, keys, value_col, duplicate_keys=duplicate_keys
        )
        summaries[name] = summary
        changes.extend(sheet_changes)
        logger.info(
            "Compared sheet %r: %d rows, %d found, %d changed",
            name,
            summary.total,
            summary.found,
            summary.changed,
        )

    for name in old.sheet_names:
        if name not in new:
            logger.debug("Sheet %r missing from the new dataset; skipping", name)
    for name in new.sheet_names:
        if name not in old:
            logger.debug("Sheet %r missing from the old dataset; skipping", name)

    return ChangeSet(
        comparison_date=today or utc_today(),
        sheets_compared=tuple(sheets_compared),
        summaries=summaries,
        changes=tuple(changes),
    )
