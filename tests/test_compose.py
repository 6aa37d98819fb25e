"""Changes-only output contracts for compose_output."""

from __future__ import annotations

from datetime import date

import pytest

from surcharge_delta.compare import compare_datasets
from surcharge_delta.compose import compose_output, output_filename
from surcharge_delta.errors import NoChangesError
from surcharge_delta.models import Dataset

GROUP_HEADER = ["PAYORAGREECODE", "BILLINGGROUPCODE", "SURCHARGEMULTIPLIER"]
TODAY = date(2024, 5, 17)


def _old() -> Dataset:
    return Dataset.from_rows(
        [
            ("Agreements", [["PAYORAGREECODE", "NAME"], ["A1", "Acme"]]),
            (
                "GroupSurcharge",
                [
                    GROUP_HEADER,
                    ["A1", "B1", "1.0"],
                    ["A1", "B2", "2.0"],
                    ["A1", "B3", "3.0"],
                ],
            ),
            ("ItemSurcharge", [["PAYORAGREECODE", "ORDERITEMCODE", "SURCHARGEMULTIPLIER"],
                               ["A1", "I1", "1"]]),
            ("Notes", []),
        ]
    )


def _new() -> Dataset:
    return Dataset.from_rows(
        [
            ("GroupSurcharge", [GROUP_HEADER, ["A1", "B3", "3.5"], ["A1", "B1", "1.5"]]),
            ("ItemSurcharge", [["PAYORAGREECODE", "ORDERITEMCODE", "SURCHARGEMULTIPLIER"],
                               ["A1", "I1", "1"]]),
        ]
    )


def test_changed_sheet_holds_old_rows_then_new_rows() -> None:
    old = _old()
    change_set = compare_datasets(old, _new(), today=TODAY)

    out = compose_output(old, change_set)

    rows = out["GroupSurcharge"].rows
    assert rows[0] == [*GROUP_HEADER, "ACTIVETO", "ACTIVEFROM"]
    assert rows[1:] == [
        ["A1", "B3", "3.0", "2024-05-17", ""],
        ["A1", "B1", "1.0", "2024-05-17", ""],
        ["A1", "B3", "3.5", "", "2024-05-17"],
        ["A1", "B1", "1.5", "", "2024-05-17"],
    ]


def test_change_symmetry_and_date_stamping() -> None:
    old = _old()
    change_set = compare_datasets(old, _new(), today=TODAY)

    out = compose_output(old, change_set)

    sheet_changes = change_set.changes_for("GroupSurcharge")
    rows = out["GroupSurcharge"].rows
    assert len(rows) - 1 == 2 * len(sheet_changes)
    n = len(sheet_changes)
    for row in rows[1 : n + 1]:
        assert (row[3], row[4]) == (change_set.date_iso, "")
    for row in rows[n + 1 :]:
        assert (row[3], row[4]) == ("", change_set.date_iso)


def test_untouched_sheets_pass_through_in_order() -> None:
    old = _old()
    change_set = compare_datasets(old, _new(), today=TODAY)

    out = compose_output(old, change_set)

    assert out.sheet_names == old.sheet_names
    # compared but unchanged, not compared, and empty sheets are copied as-is
    for name in ("Agreements", "ItemSurcharge", "Notes"):
        assert out[name].rows == old[name].rows
    assert out["Agreements"].rows is not old["Agreements"].rows


def test_existing_validity_columns_are_reused_and_overwritten() -> None:
    header = ["ACTIVEFROM", *GROUP_HEADER, "ActiveTo Date"]
    old = Dataset.from_rows([("GroupSurcharge", [header, ["2020-01-01", "A1", "B1", "1.0", "2099-12-31"]])])
    new = Dataset.from_rows([("GroupSurcharge", [header, ["2020-01-01", "A1", "B1", "1.1"]])])
    change_set = compare_datasets(old, new, today=TODAY)

    out = compose_output(old, change_set)

    rows = out["GroupSurcharge"].rows
    assert rows[0] == header
    assert rows[1] == ["", "A1", "B1", "1.0", "2024-05-17"]
    assert rows[2] == ["2024-05-17", "A1", "B1", "1.1", ""]


def test_short_rows_are_padded_to_output_width() -> None:
    header = [*GROUP_HEADER, "NOTE"]
    old = Dataset.from_rows([("GroupSurcharge", [header, ["A1", "B1", "1.0"]])])
    new = Dataset.from_rows([("GroupSurcharge", [header, ["A1", "B1", "2.0"]])])
    change_set = compare_datasets(old, new, today=TODAY)

    out = compose_output(old, change_set)

    assert all(len(row) == 6 for row in out["GroupSurcharge"].rows)


def test_compose_does_not_mutate_inputs() -> None:
    old = _old()
    before = [list(row) for row in old["GroupSurcharge"].rows]
    change_set = compare_datasets(old, _new(), today=TODAY)
    changes_before = change_set.to_dict()

    compose_output(old, change_set)

    assert old["GroupSurcharge"].rows == before
    assert change_set.to_dict() == changes_before


def test_empty_change_set_raises_no_changes() -> None:
    old = _old()
    change_set = compare_datasets(old, old, today=TODAY)

    with pytest.raises(NoChangesError, match="Nothing to export"):
        compose_output(old, change_set)


def test_output_filename_uses_comparison_date() -> None:
    change_set = compare_datasets(Dataset(), Dataset(), today=TODAY)

    assert output_filename(change_set) == "PayorAgreement_Changes_2024-05-17.xlsx"
