from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date

import pytest

from surcharge_delta.models import (
    ChangeRecord,
    ChangeSet,
    CompositeKey,
    Dataset,
    RunManifest,
    SheetSummary,
    TabularSheet,
)


def _change(sheet: str = "GroupSurcharge", old: str = "1.2", new: str = "1.5") -> ChangeRecord:
    return ChangeRecord(
        sheet=sheet,
        key1_name="PAYORAGREECODE",
        key2_name="BILLINGGROUPCODE",
        key1="A1",
        key2="B1",
        header=("PAYORAGREECODE", "BILLINGGROUPCODE", "SURCHARGEMULTIPLIER"),
        old_row=("A1", "B1", old),
        new_row=("A1", "B1", new),
        old_value=old,
        new_value=new,
    )


def test_tabular_sheet_normalizes_none_and_non_string_cells() -> None:
    sheet = TabularSheet(name="S", rows=[["a", None], [1, 2.5]])  # type: ignore[list-item]

    assert sheet.rows == [["a", ""], ["1", "2.5"]]
    assert sheet.header == ["a", ""]
    assert sheet.data_rows == [["1", "2.5"]]


def test_tabular_sheet_cell_reads_short_rows_as_empty() -> None:
    sheet = TabularSheet(name="S", rows=[["a", "b", "c"], ["x"]])

    assert sheet.cell(1, 0) == "x"
    assert sheet.cell(1, 2) == ""


def test_tabular_sheet_rejects_string_row() -> None:
    with pytest.raises(TypeError, match="rows\\[0\\]"):
        TabularSheet(name="S", rows=["abc"])  # type: ignore[list-item]


def test_dataset_from_rows_keeps_order() -> None:
    ds = Dataset.from_rows([("b", [["h"]]), ("a", [["h"]])])

    assert ds.sheet_names == ["b", "a"]
    assert [sheet.name for sheet in ds] == ["b", "a"]
    assert "a" in ds
    assert len(ds) == 2


def test_dataset_rejects_mismatched_sheet_names() -> None:
    with pytest.raises(ValueError, match="sheet_names"):
        Dataset(sheets={"a": TabularSheet(name="a")}, sheet_names=["a", "b"])

    with pytest.raises(ValueError, match="Duplicate sheet name"):
        Dataset.from_rows([("a", []), ("a", [])])


def test_composite_key_trims_and_ignores_case() -> None:
    assert CompositeKey.of(" a1 ", "B1") == CompositeKey.of("A1", " b1")
    assert CompositeKey.of("A1", "B1").serialize() == "A1|B1"


def test_composite_key_is_structural() -> None:
    # "A|B" + "C" and "A" + "B|C" serialize alike but stay distinct keys.
    assert CompositeKey.of("A|B", "C") != CompositeKey.of("A", "B|C")


def test_change_record_rejects_equal_values() -> None:
    with pytest.raises(ValueError, match="differ"):
        _change(old="1.2", new=" 1.2 ")


def test_sheet_summary_enforces_counter_relationships() -> None:
    with pytest.raises(ValueError, match="changed \\+ unchanged"):
        SheetSummary(total=2, found=2, changed=1, unchanged=0)

    with pytest.raises(ValueError, match="total"):
        SheetSummary(total=1, found=1, not_found=1, changed=1)

    with pytest.raises(TypeError, match="total"):
        SheetSummary(total=True)  # type: ignore[arg-type]


def test_sheet_summary_skipped_counts_blank_key_rows() -> None:
    summary = SheetSummary(total=5, found=2, not_found=1, changed=1, unchanged=1)

    assert summary.skipped == 2


def test_change_set_is_read_only_and_groups_changes() -> None:
    change_set = ChangeSet(
        comparison_date=date(2024, 3, 1),
        sheets_compared=["GroupSurcharge", "ItemSurcharge"],  # type: ignore[arg-type]
        summaries={
            "GroupSurcharge": SheetSummary(total=1, found=1, changed=1),
            "ItemSurcharge": SheetSummary(total=1, not_found=1),
        },
        changes=[_change()],  # type: ignore[arg-type]
    )

    assert change_set.sheets_compared == ("GroupSurcharge", "ItemSurcharge")
    assert change_set.date_iso == "2024-03-01"
    assert len(change_set.changes_for("GroupSurcharge")) == 1
    assert change_set.changes_for("ItemSurcharge") == []
    assert change_set.totals().to_dict() == {
        "total": 2, "found": 1, "not_found": 1, "changed": 1, "unchanged": 0,
    }
    with pytest.raises(TypeError):
        change_set.summaries["Other"] = SheetSummary()  # type: ignore[index]


def test_change_set_summaries_cannot_be_edited_in_place() -> None:
    change_set = ChangeSet(
        comparison_date=date(2024, 3, 1),
        sheets_compared=("GroupSurcharge",),
        summaries={"GroupSurcharge": SheetSummary(total=1, found=1, changed=1)},
        changes=(_change(),),
    )

    with pytest.raises(FrozenInstanceError):
        change_set.summaries["GroupSurcharge"].found = 99  # type: ignore[misc]
    assert change_set.summaries["GroupSurcharge"].found == 1


def test_change_set_rejects_changes_for_uncompared_sheet() -> None:
    with pytest.raises(ValueError, match="uncompared"):
        ChangeSet(comparison_date=date(2024, 3, 1), changes=(_change(),))


def test_change_set_to_dict_contract() -> None:
    change_set = ChangeSet(
        comparison_date=date(2024, 3, 1),
        sheets_compared=("GroupSurcharge",),
        summaries={"GroupSurcharge": SheetSummary(total=1, found=1, changed=1)},
        changes=(_change(),),
    )

    payload = change_set.to_dict()

    assert payload["comparison_date"] == "2024-03-01"
    assert payload["sheets_compared"] == ["GroupSurcharge"]
    assert payload["summaries"]["GroupSurcharge"]["changed"] == 1
    assert payload["changes"][0]["old_value"] == "1.2"
    assert payload["changes"][0]["new_row"] == ["A1", "B1", "1.5"]


def test_run_manifest_validates_counts_and_status() -> None:
    with pytest.raises(TypeError, match="changes"):
        RunManifest(changes=True)  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="sheets_compared"):
        RunManifest(sheets_compared=-1)

    with pytest.raises(ValueError, match="status"):
        RunManifest(status="maybe")
