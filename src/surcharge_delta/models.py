"""Data models shared by the comparison engine, the composer and the CLI."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from numbers import Integral
from types import MappingProxyType
from typing import Any, NamedTuple

KEY_SEPARATOR = "|"


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_row(values: Sequence[Any], field_name: str) -> list[str]:
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of cells, not a string")
    return ["" if item is None else str(item) for item in values]


# ── Sheets ───────────────────────────────────────────────────────


@dataclass
class TabularSheet:
    """A parsed grid: ``rows[0]`` is the header, ``rows[1:]`` are data rows.

    Every cell is a string; ``None`` becomes ``""``.  Data rows may be shorter
    than the header, missing trailing cells read as empty.
    """

    name: str
    rows: list[list[str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError("name must be a string")
        self.rows = [_to_row(row, f"rows[{idx}]") for idx, row in enumerate(self.rows)]

    @property
    def header(self) -> list[str]:
        return self.rows[0] if self.rows else []

    @property
    def data_rows(self) -> list[list[str]]:
        return self.rows[1:]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row_index: int, col_index: int) -> str:
        row = self.rows[row_index]
        if col_index < 0 or col_index >= len(row):
            return ""
        return row[col_index]


@dataclass
class Dataset:
    """Sheets keyed by name plus the order they appeared in the workbook."""

    sheets: dict[str, TabularSheet] = field(default_factory=dict)
    sheet_names: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.sheet_names:
            self.sheet_names = list(self.sheets)
        if len(set(self.sheet_names)) != len(self.sheet_names):
            raise ValueError("sheet_names must not contain duplicates")
        if set(self.sheet_names) != set(self.sheets):
            raise ValueError("sheet_names must list exactly the sheets in the dataset")
        for name, sheet in self.sheets.items():
            if sheet.name != name:
                raise ValueError(f"sheet registered as {name!r} is named {sheet.name!r}")

    @classmethod
    def from_rows(cls, sheets: Iterable[tuple[str, Sequence[Sequence[Any]]]]) -> Dataset:
        """Build a dataset from ``(sheet_name, rows)`` pairs, keeping their order."""
        ordered: dict[str, TabularSheet] = {}
        for name, rows in sheets:
            if name in ordered:
                raise ValueError(f"Duplicate sheet name: {name!r}")
            ordered[name] = TabularSheet(name=name, rows=[list(r) for r in rows])
        return cls(sheets=ordered, sheet_names=list(ordered))

    def __contains__(self, name: object) -> bool:
        return name in self.sheets

    def __getitem__(self, name: str) -> TabularSheet:
        return self.sheets[name]

    def __iter__(self) -> Iterator[TabularSheet]:
        for name in self.sheet_names:
            yield self.sheets[name]

    def __len__(self) -> int:
        return len(self.sheet_names)


# ── Keys and records ─────────────────────────────────────────────


class CompositeKey(NamedTuple):
    """Two-column record identity, trimmed and upper-cased for lookup."""

    first: str
    second: str

    @classmethod
    def of(cls, key1: str, key2: str) -> CompositeKey:
        return cls(key1.strip().upper(), key2.strip().upper())

    def serialize(self) -> str:
        return f"{self.first}{KEY_SEPARATOR}{self.second}"


@dataclass(frozen=True)
class IndexedRecord:
    """An old-dataset data row with its key and pre-resolved tracked value."""

    key: CompositeKey
    row_index: int
    row: tuple[str, ...]
    key1: str
    key2: str
    tracked_value: str


@dataclass(frozen=True)
class ChangeRecord:
    """One matched record whose tracked value differs between old and new.

    Contract invariant: ``old_value != new_value`` (both already trimmed).
    """

    sheet: str
    key1_name: str
    key2_name: str
    key1: str
    key2: str
    header: tuple[str, ...]
    old_row: tuple[str, ...]
    new_row: tuple[str, ...]
    old_value: str
    new_value: str

    def __post_init__(self) -> None:
        if self.old_value.strip() == self.new_value.strip():
            raise ValueError("old_value and new_value must differ for a change record")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet,
            "key1_name": self.key1_name,
            "key2_name": self.key2_name,
            "key1": self.key1,
            "key2": self.key2,
            "header": list(self.header),
            "old_row": list(self.old_row),
            "new_row": list(self.new_row),
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


# ── Summaries ────────────────────────────────────────────────────


@dataclass(frozen=True)
class SheetSummary:
    """Per-sheet counters.

    Contract invariants: ``found == changed + unchanged`` and
    ``found + not_found <= total``.  The two sides of the second relation are
    equal unless some new rows had a blank key; those rows are counted in
    ``total`` only (see :attr:`skipped`).
    """

    total: int = 0
    found: int = 0
    not_found: int = 0
    changed: int = 0
    unchanged: int = 0

    def __post_init__(self) -> None:
        for name in ("total", "found", "not_found", "changed", "unchanged"):
            object.__setattr__(self, name, _to_non_negative_int(getattr(self, name), name))
        self.check()

    def check(self) -> None:
        if self.changed + self.unchanged != self.found:
            raise ValueError("found must equal changed + unchanged")
        if self.found + self.not_found > self.total:
            raise ValueError("found + not_found must be <= total")

    @property
    def skipped(self) -> int:
        return self.total - self.found - self.not_found

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "found": self.found,
            "not_found": self.not_found,
            "changed": self.changed,
            "unchanged": self.unchanged,
        }


@dataclass(frozen=True)
class ChangeSet:
    """Result of one comparison run; read-only once returned."""

    comparison_date: date
    sheets_compared: tuple[str, ...] = ()
    summaries: Mapping[str, SheetSummary] = field(default_factory=dict)
    changes: tuple[ChangeRecord, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.comparison_date, date):
            raise TypeError("comparison_date must be a date")
        object.__setattr__(self, "sheets_compared", tuple(self.sheets_compared))
        object.__setattr__(self, "changes", tuple(self.changes))
        object.__setattr__(self, "summaries", MappingProxyType(dict(self.summaries)))
        if set(self.summaries) != set(self.sheets_compared):
            raise ValueError("summaries must cover exactly the compared sheets")
        for change in self.changes:
            if change.sheet not in self.summaries:
                raise ValueError(f"change recorded for uncompared sheet {change.sheet!r}")

    @property
    def date_iso(self) -> str:
        return self.comparison_date.isoformat()

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def changes_for(self, sheet: str) -> list[ChangeRecord]:
        return [change for change in self.changes if change.sheet == sheet]

    def totals(self) -> SheetSummary:
        return SheetSummary(
            total=sum(s.total for s in self.summaries.values()),
            found=sum(s.found for s in self.summaries.values()),
            not_found=sum(s.not_found for s in self.summaries.values()),
            changed=sum(s.changed for s in self.summaries.values()),
            unchanged=sum(s.unchanged for s in self.summaries.values()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "comparison_date": self.date_iso,
            "sheets_compared": list(self.sheets_compared),
            "summaries": {name: self.summaries[name].to_dict() for name in self.sheets_compared},
            "changes": [change.to_dict() for change in self.changes],
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "surcharge-delta"
    version: str = ""
    old_path: str = ""
    new_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    comparison_date: str = ""
    sheets_compared: int = 0
    changes: int = 0
    old_sha256: str = ""
    new_sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.sheets_compared = _to_non_negative_int(self.sheets_compared, "sheets_compared")
        self.changes = _to_non_negative_int(self.changes, "changes")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "old_path": self.old_path,
            "new_path": self.new_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "comparison_date": self.comparison_date,
            "sheets_compared": self.sheets_compared,
            "changes": self.changes,
            "old_sha256": self.old_sha256,
            "new_sha256": self.new_sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
