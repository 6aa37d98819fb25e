"""CLI entry point for surcharge-delta."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from surcharge_delta import TRACKED_COLUMN, __version__
from surcharge_delta.columns import (
    DEFAULT_KEY_RULES,
    KeyRule,
    load_key_rules,
    resolve_column,
    resolve_key_columns,
    select_keys,
)
from surcharge_delta.compare import MIN_SHEET_ROWS, compare_datasets
from surcharge_delta.compose import compose_output, output_filename
from surcharge_delta.errors import SurchargeDeltaError
from surcharge_delta.io import load_dataset_file, write_dataset_file, write_json
from surcharge_delta.models import ChangeSet, Dataset, RunManifest
from surcharge_delta.report import write_comparison_report
from surcharge_delta.utils import sha256_file, utcnow_iso

app = typer.Typer(
    name="sdelta",
    help="surcharge-delta — Turn payor agreement price updates into dated change feeds.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

CHANGES_JSON = "changes.json"
MANIFEST_JSON = "run_manifest.json"


class DuplicateKeysOption(str, Enum):
    last = "last"
    first = "first"
    reject = "reject"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"surcharge-delta v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    pkg_logger = logging.getLogger("surcharge_delta")
    pkg_logger.handlers.clear()
    pkg_logger.addHandler(RichHandler(console=console, show_time=False, show_path=False))
    pkg_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _parse_date(raw: str | None) -> date | None:
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid --date value: {raw!r} (expected YYYY-MM-DD)") from exc


def _key_rules(profile: Path | None) -> tuple[KeyRule, ...]:
    return (*load_key_rules(profile), *DEFAULT_KEY_RULES)


def _safe_sha256(path: Path) -> str:
    try:
        return sha256_file(path)
    except OSError:
        return ""


def _write_manifest(
    out_dir: Path,
    old_file: Path,
    new_file: Path,
    created_at: str,
    change_set: ChangeSet | None = None,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    manifest = RunManifest(
        version=__version__,
        old_path=str(old_file.resolve()),
        new_path=str(new_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        comparison_date=change_set.date_iso if change_set else "",
        sheets_compared=len(change_set.sheets_compared) if change_set else 0,
        changes=len(change_set.changes) if change_set else 0,
        old_sha256=_safe_sha256(old_file),
        new_sha256=_safe_sha256(new_file),
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / MANIFEST_JSON, manifest.to_dict())


def _fail(
    out_dir: Path,
    old_file: Path,
    new_file: Path,
    created_at: str,
    message: str,
    *,
    error_code: int,
) -> typer.Exit:
    manifest_path = _write_manifest(
        out_dir,
        old_file,
        new_file,
        created_at,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Manifest -> {manifest_path}")
    return typer.Exit(code=error_code)


def _summary_table(change_set: ChangeSet) -> RichTable:
    tbl = RichTable(title="Comparison Summary", show_lines=True)
    tbl.add_column("Sheet", style="bold")
    for label in ("Total", "Found", "Not Found", "Changed", "Unchanged"):
        tbl.add_column(label, justify="right")
    for name in change_set.sheets_compared:
        s = change_set.summaries[name]
        changed = f"[yellow]{s.changed}[/yellow]" if s.changed else "0"
        tbl.add_row(
            name, str(s.total), str(s.found), str(s.not_found), changed, str(s.unchanged)
        )
    return tbl


def _changes_table(change_set: ChangeSet) -> RichTable:
    tbl = RichTable(title=f"Changed Records ({len(change_set.changes)})")
    for label in ("Sheet", "Key 1", "Key 2", "Old", "New"):
        tbl.add_column(label)
    for change in change_set.changes:
        tbl.add_row(
            change.sheet,
            f"{change.key1_name}={change.key1}",
            f"{change.key2_name}={change.key2}",
            f"[red]{change.old_value}[/red]",
            f"[green]{change.new_value}[/green]",
        )
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """surcharge-delta CLI."""


# ── compare command ──────────────────────────────────────────────


@app.command()
def compare(
    old_file: Path = typer.Option(
        ..., "--old",
        help="Complete workbook with every code at its current price.",
        exists=True, readable=True,
    ),
    new_file: Path = typer.Option(
        ..., "--new",
        help="Partial workbook holding only codes whose price changed.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the change workbook, report + manifest.",
    ),
    tracked_column: str = typer.Option(
        TRACKED_COLUMN, "--tracked-column",
        help="Header (substring match) of the value column whose change is tracked.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Extra key rules, one per line: sheet_pattern=KEY1,KEY2.",
    ),
    duplicate_keys: DuplicateKeysOption = typer.Option(
        DuplicateKeysOption.last, "--duplicate-keys",
        help="Old rows sharing a key: keep last, keep first, or reject.",
    ),
    as_of: str | None = typer.Option(
        None, "--date",
        help="Comparison date (YYYY-MM-DD); defaults to today in UTC.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log every skipped sheet and duplicate key.",
    ),
) -> None:
    """Compare OLD and NEW workbooks and export the dated change pairs."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        today = _parse_date(as_of)
        rules = _key_rules(profile)
    except ValueError as exc:
        raise _fail(out_dir, old_file, new_file, created_at, str(exc), error_code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]surcharge-delta[/bold] v{__version__}\n"
            f"Old:    {old_file}\nNew:    {new_file}\nOutput: {out_dir}",
            title="Comparison Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading workbooks …")
    try:
        old = load_dataset_file(old_file)
        new = load_dataset_file(new_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, old_file, new_file, created_at, str(exc), error_code=2)
    echo(f"  old: {len(old)} sheets, new: {len(new)} sheets")

    try:
        # ── Compare ──────────────────────────────────────────────
        echo("[blue]>[/blue] Comparing …")
        try:
            change_set = compare_datasets(
                old,
                new,
                today=today,
                tracked_column=tracked_column,
                key_rules=rules,
                duplicate_keys=duplicate_keys.value,
            )
        except SurchargeDeltaError as exc:
            raise _fail(out_dir, old_file, new_file, created_at, str(exc), error_code=2)

        if not quiet:
            console.print(_summary_table(change_set))
            if change_set.has_changes:
                console.print(_changes_table(change_set))

        changes_path = write_json(out_dir / CHANGES_JSON, change_set.to_dict())
        echo(f"  Changes  -> {changes_path}")
        report_path = write_comparison_report(out_dir, change_set)
        echo(f"  Report   -> {report_path}")

        # ── Compose ──────────────────────────────────────────────
        delta_path: Path | None = None
        if change_set.has_changes:
            echo("[blue]>[/blue] Writing change workbook …")
            delta = compose_output(old, change_set)
            delta_path = write_dataset_file(out_dir / output_filename(change_set), delta)
            echo(f"  Workbook -> {delta_path}")
        else:
            console.print("[yellow]![/yellow] No price changes detected. Nothing to export.")

        manifest_path = _write_manifest(out_dir, old_file, new_file, created_at, change_set)
        echo(f"  Manifest -> {manifest_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {len(change_set.changes)} changed records "
                f"across {len(change_set.sheets_compared)} sheets"
                + (f" -> {delta_path}" if delta_path else ""),
                title="Comparison Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            old_file,
            new_file,
            created_at,
            f"Unexpected internal error: {exc}",
            error_code=1,
        )


# ── inspect command ──────────────────────────────────────────────


def _inspect_rows(
    dataset: Dataset, tracked_column: str, rules: tuple[KeyRule, ...]
) -> list[tuple[str, str, str, str, str]]:
    rows: list[tuple[str, str, str, str, str]] = []
    for sheet in dataset:
        value_col = resolve_column(sheet.header, tracked_column)
        key_names = select_keys(sheet.name, rules)
        if sheet.row_count < MIN_SHEET_ROWS:
            status = "skip: no data rows"
        elif value_col is None:
            status = f"skip: no {tracked_column}"
        elif resolve_key_columns(sheet.name, sheet.header, rules) is None:
            status = "skip: no key columns"
        else:
            status = "compare"
        rows.append(
            (
                sheet.name,
                str(max(sheet.row_count - 1, 0)),
                "-" if value_col is None else sheet.header[value_col],
                "-" if key_names is None else " + ".join(key_names),
                status,
            )
        )
    return rows


@app.command()
def inspect(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Workbook to inspect.",
        exists=True, readable=True,
    ),
    tracked_column: str = typer.Option(
        TRACKED_COLUMN, "--tracked-column",
        help="Header (substring match) of the value column whose change is tracked.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Extra key rules, one per line: sheet_pattern=KEY1,KEY2.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log every skipped sheet.",
    ),
) -> None:
    """List each sheet and whether a comparison would track it.

    Exit 0 = at least one sheet is comparable, exit 2 = none or unreadable.
    """
    _configure_logging(verbose)
    try:
        rules = _key_rules(profile)
        dataset = load_dataset_file(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    rows = _inspect_rows(dataset, tracked_column, rules)
    tbl = RichTable(title=f"Sheets in {input_file.name}", show_lines=True)
    for label in ("Sheet", "Data Rows", "Tracked Column", "Key Columns", "Status"):
        tbl.add_column(label)
    for name, count, tracked, keys, status in rows:
        style = "green" if status == "compare" else "yellow"
        tbl.add_row(name, count, tracked, keys, f"[{style}]{status}[/{style}]")
    console.print(tbl)

    if not any(status == "compare" for *_rest, status in rows):
        _err("No comparable sheets found.")
        raise typer.Exit(code=2)
