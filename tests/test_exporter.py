import decimal

import pytest

from stocktake.models import AggregatedExportRow, ExportHeaderRow

from conftest import STANDARD_HEADERS, STANDARD_MAP

D = decimal.Decimal

FIRST_FILE = [
    STANDARD_HEADERS,
    ["SUROWCE"],
    [1, "", "Flour", 10, "kg"],
    [2, "", "Sugar", 5, "kg"],
    ["PÓŁPRODUKTY"],
    [3, "", "Dough", 2, "szt"],
]
SECOND_FILE = [
    STANDARD_HEADERS,
    ["Surowce"],
    [1, "", "Sugar", 3, "kg"],
    [2, "", "Salt", 1, "kg"],
]


@pytest.fixture
def loaded(orchestrator):
    orchestrator.ingest_file("first", FIRST_FILE, STANDARD_MAP, file_name="first.xlsx")
    orchestrator.ingest_file("second", SECOND_FILE, STANDARD_MAP, file_name="second.xlsx")
    return orchestrator


def rendered(entries):
    return [
        ("header", e.label) if isinstance(e, ExportHeaderRow) else (e.line_number, e.name, e.quantity)
        for e in entries
    ]


def test_aggregated_view_follows_templates(loaded):
    """Banners appear once, items once, with merged totals."""
    assert rendered(loaded.export_aggregated()) == [
        ("header", "SUROWCE"),
        (1, "Flour", D(10)),
        (2, "Sugar", D(8)),
        ("header", "PÓŁPRODUKTY"),
        (3, "Dough", D(2)),
        (4, "Salt", D(1)),
    ]


def test_aggregated_view_uses_live_totals(loaded):
    flour = next(a for a in loaded.list_aggregates() if a.name == "Flour")
    loaded.edit_aggregate(flour.id, "12.5")

    row = next(e for e in loaded.export_aggregated() if isinstance(e, AggregatedExportRow) and e.name == "Flour")
    assert row.quantity == D("12.5")
    assert row.aggregate_id == flour.id


def test_manual_entries_are_appended(loaded):
    loaded.add_manual_entry("Yeast", 1, "kg")
    last = loaded.export_aggregated()[-1]
    assert (last.line_number, last.name) == (5, "Yeast")


def test_deleted_aggregate_is_not_exported(loaded):
    flour = next(a for a in loaded.list_aggregates() if a.name == "Flour")
    loaded.delete_aggregate(flour.id)

    names = [e.name for e in loaded.export_aggregated() if isinstance(e, AggregatedExportRow)]
    assert names == ["Sugar", "Dough", "Salt"]


def test_removed_file_no_longer_shapes_export(loaded):
    loaded.remove_file("first")
    assert rendered(loaded.export_aggregated()) == [
        ("header", "SUROWCE"),
        (1, "Sugar", D(3)),
        (2, "Salt", D(1)),
    ]


def test_raw_view_orders_by_upload_then_row(loaded):
    rows = loaded.export_raw()

    assert [(r.line_number, r.file_name, r.name, r.original_row_index) for r in rows] == [
        (1, "first.xlsx", "Flour", 2),
        (2, "first.xlsx", "Sugar", 3),
        (3, "first.xlsx", "Dough", 5),
        (4, "second.xlsx", "Sugar", 2),
        (5, "second.xlsx", "Salt", 3),
    ]


def test_raw_view_ignores_aggregate_edits(loaded):
    """Raw rows are the stored line items, not the live totals."""
    sugar = next(a for a in loaded.list_aggregates() if a.name == "Sugar")
    loaded.edit_aggregate(sugar.id, 100)
    assert [r.quantity for r in loaded.export_raw() if r.name == "Sugar"] == [D(5), D(3)]


def test_empty_store_exports_nothing(orchestrator):
    assert orchestrator.export_aggregated() == []
    assert orchestrator.export_raw() == []
