import pytest

from ingest.conditions import lookup_condition
from ingest.sheet_parser import (
    extract_dosage_columns,
    extract_link,
    parse_price_cell,
    parse_workbook,
    unique_medication_id,
)


def _sheet(condition, name, form, dosages, pharmacy_rows):
    return [
        [],
        [],
        [],
        ["", condition, name, form],
        ["", "", *dosages, "link"],
        *pharmacy_rows,
    ]


def test_link_is_rightmost_http_cell():
    row = [4.5, "Boots", 99, "http://first.example", "note", "https://boots.example/ozempic", None]
    assert extract_link(row) == "https://boots.example/ozempic"


def test_link_missing_is_empty():
    assert extract_link([4.0, "Boots", 12.5]) == ""


def test_dosage_headers_stop_at_link():
    assert extract_dosage_columns(["", "", "0.25mg", "0.5mg", "Link", "1mg"]) == [(2, "0.25mg"), (3, "0.5mg")]


def test_dosage_headers_stop_at_empty_cell():
    assert extract_dosage_columns(["", "", "5mg", "", "10mg"]) == [(2, "5mg")]


@pytest.mark.parametrize("raw,expected", [
    (12.5, 12.5),
    ("£1,299.00", 1299.0),
    (0, None),
    (-3, None),
    ("N/A", None),
    ("", None),
    (None, None),
    (True, None),
    (float("nan"), None),
])
def test_parse_price_cell(raw, expected):
    assert parse_price_cell(raw) == expected


def test_condition_lookup_is_case_insensitive():
    m = lookup_condition("weight loss")
    assert m is not None
    assert m.category_id == "weight-loss"


def test_same_name_different_form_gets_form_suffix():
    taken = {"ozempic"}
    assert unique_medication_id("Ozempic", "Tablet", "weight-loss-medications", taken) == "ozempic-tablet"
    taken.add("ozempic-tablet")
    assert unique_medication_id("Ozempic", "Tablet", "weight-loss-medications", taken) == "ozempic-tablet-2"


def test_parse_workbook_builds_catalog():
    workbook = {
        "Ozempic Pen": _sheet("WEIGHT LOSS", "Ozempic", "Pen", ["0.25mg", "0.5mg"], [
            [4.5, "Boots Online", 99.0, 0, "https://boots.example/oz"],
            [3.9, "Lloyds Pharmacy", -1, 105.5, "https://lloyds.example/oz"],
        ]),
        "Ozempic Tab": _sheet("Weight Loss", "Ozempic", "Tablet", ["3mg"], [
            [4.5, "Boots Online", 80, "https://boots.example/tab"],
        ]),
    }

    catalog = parse_workbook(workbook)

    ids = [m["id"] for m in catalog.medications]
    assert ids == ["ozempic", "ozempic-tablet"]
    assert catalog.medications[0]["dosage"] == ["0.25mg", "0.5mg"]

    assert sorted(p["id"] for p in catalog.pharmacies) == ["boots-online", "lloyds-pharmacy"]

    triples = sorted((p["medication_id"], p["pharmacy_id"], p["dosage"], p["price"]) for p in catalog.prices)
    assert triples == [
        ("ozempic", "boots-online", "0.25mg", 99.0),
        ("ozempic", "lloyds-pharmacy", "0.5mg", 105.5),
        ("ozempic-tablet", "boots-online", "3mg", 80.0),
    ]
    assert all(p["source"] == "migration" for p in catalog.prices)
    assert catalog.prices[0]["link"] == "https://boots.example/oz"


def test_unmapped_condition_sheet_is_skipped():
    workbook = {
        "Mystery": _sheet("Something Unknown", "Mystery Pill", "Tablet", ["1mg"], [[4.0, "Boots", 10.0]]),
    }
    catalog = parse_workbook(workbook)
    assert catalog.medications == []
    assert catalog.sheets_skipped == 1
    assert catalog.unmapped_conditions == ["Something Unknown"]


def test_short_sheet_is_skipped():
    catalog = parse_workbook({"Tiny": [[], []]})
    assert catalog.counts()["sheets_skipped"] == 1


def test_workbook_must_be_mapping():
    with pytest.raises(ValueError):
        parse_workbook([])


def test_metadata_falls_back_to_row_four_when_row_three_has_no_condition():
    workbook = {
        "Differin": [
            [],
            [],
            [],
            ["", "", "", ""],
            ["", "Acne", "Differin", "Gel"],
            [4.2, "Boots", 12.5, 13.0, "https://boots.example/differin"],
        ],
    }

    catalog = parse_workbook(workbook)

    assert [m["id"] for m in catalog.medications] == ["differin"]
    med = catalog.medications[0]
    assert med["subcategory"] == "acne"
    assert med["form"] == "Gel"
    # row 4 doubles as the dosage header row
    assert med["dosage"] == ["Differin", "Gel"]
    assert sorted((p["dosage"], p["price"]) for p in catalog.prices) == [("Differin", 12.5), ("Gel", 13.0)]
