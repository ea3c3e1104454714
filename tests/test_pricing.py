from datetime import datetime, timedelta, timezone

from pricing.aggregation import PriceQueryService, build_matrix_entries, matrix_key, qualifies, select_lowest
from tests.fakes import FakeMedicationRepo, FakePharmacyRepo, FakePriceRepo


def _row(pharmacy_id, price, dosage="10mg", in_stock=True):
    return {"medication_id": "sildenafil", "pharmacy_id": pharmacy_id, "dosage": dosage,
            "price": price, "in_stock": in_stock, "link": ""}


def test_qualifies_rejects_non_positive_and_out_of_stock():
    assert qualifies(_row("a", 5.0))
    assert not qualifies(_row("a", 0))
    assert not qualifies(_row("a", -1))
    assert not qualifies(_row("a", None))
    assert not qualifies(_row("a", "5.00"))
    assert not qualifies(_row("a", 5.0, in_stock=False))


def test_select_lowest_breaks_ties_by_pharmacy_id():
    rows = [_row("zeta", 9.99), _row("alpha", 9.99), _row("mid", 12.0), _row("free", 0)]
    best = select_lowest(rows)
    assert best["pharmacy_id"] == "alpha"


def test_select_lowest_none_when_nothing_qualifies():
    assert select_lowest([_row("a", 0), _row("b", 3.0, in_stock=False)]) is None


def test_matrix_is_sparse():
    rows = [_row("boots", 12.0, "25mg"), _row("boots", 0, "50mg"), _row("lloyds", 14.0, "50mg", in_stock=False)]
    entries = build_matrix_entries(rows)
    assert list(entries) == [matrix_key("sildenafil", "boots", "25mg")]
    assert entries["sildenafil:boots:25mg"]["price"] == 12.0


def _service():
    meds = FakeMedicationRepo([
        {"id": "sildenafil", "name": "Sildenafil", "subcategory": "ed", "dosage": ["25mg", "50mg"], "active": True},
    ])
    pharmacies = FakePharmacyRepo([
        {"id": "boots", "name": "Boots", "rating": 4.8, "active": True},
        {"id": "lloyds", "name": "Lloyds", "rating": 4.1, "active": True},
        {"id": "closed", "name": "Closed", "rating": 5.0, "active": False},
    ])
    prices = FakePriceRepo()
    return PriceQueryService(medications=meds, pharmacies=pharmacies, prices=prices), prices


def test_lowest_price_skips_rows_for_missing_pharmacies():
    svc, prices = _service()
    prices.add("sildenafil", "gone", "25mg", 1.0)
    prices.add("sildenafil", "lloyds", "25mg", 7.5)
    prices.add("sildenafil", "boots", "25mg", 8.0)

    best = svc.lowest_price("sildenafil")

    assert best["pharmacy_id"] == "lloyds"
    assert best["pharmacy"]["name"] == "Lloyds"


def test_prices_for_medication_sorts_by_rating():
    svc, prices = _service()
    prices.add("sildenafil", "lloyds", "25mg", 7.5)
    prices.add("sildenafil", "boots", "25mg", 8.0)

    rows = svc.prices_for_medication("sildenafil", sort="rating")

    assert [r["pharmacy_id"] for r in rows] == ["boots", "lloyds"]


def test_matrix_leaves_out_inactive_pharmacies():
    svc, prices = _service()
    prices.add("sildenafil", "boots", "25mg", 8.0)
    prices.add("sildenafil", "closed", "50mg", 6.0)

    matrix = svc.build_matrix("ed")

    assert [p["id"] for p in matrix["pharmacies"]] == ["boots"]
    assert list(matrix["prices"]) == ["sildenafil:boots:25mg"]


def test_recent_updates_join_names_and_drop_orphans():
    svc, prices = _service()
    now = datetime.now(timezone.utc)
    prices.add("sildenafil", "boots", "25mg", 8.0, last_updated=now - timedelta(hours=1))
    prices.add("sildenafil", "gone", "25mg", 8.0, last_updated=now - timedelta(minutes=5))
    prices.add("sildenafil", "lloyds", "50mg", 9.0, last_updated=now - timedelta(days=3))

    rows = svc.recent_updates()

    assert len(rows) == 1
    assert rows[0]["medication_name"] == "Sildenafil"
    assert rows[0]["pharmacy_name"] == "Boots"


def test_comparison_groups_by_pharmacy_best_rated_first():
    svc, prices = _service()
    prices.add("sildenafil", "lloyds", "50mg", 9.0)
    prices.add("sildenafil", "lloyds", "25mg", 7.5)
    prices.add("sildenafil", "boots", "25mg", 8.0)
    prices.add("sildenafil", "ghost", "25mg", 1.0)

    out = svc.build_comparison("sildenafil")

    assert out["medication"]["id"] == "sildenafil"
    assert [g["pharmacy"]["id"] for g in out["comparison"]] == ["boots", "lloyds"]
    assert [p["dosage"] for p in out["comparison"][1]["prices"]] == ["25mg", "50mg"]


def test_comparison_unknown_medication_is_none():
    svc, _ = _service()
    assert svc.build_comparison("nope") is None


def test_price_grid_keys_rows_by_pharmacy_and_dosage():
    svc, prices = _service()
    prices.add("sildenafil", "boots", "25mg", 8.0)
    prices.add("sildenafil", "lloyds", "50mg", 9.0, in_stock=False)

    out = svc.build_price_grid("sildenafil")

    assert sorted(out["price_grid"]) == ["boots:25mg", "lloyds:50mg"]
    cell = out["price_grid"]["lloyds:50mg"]
    assert cell["record_id"] == "sildenafil:lloyds:50mg"
    assert cell["price"] == 9.0
    assert cell["in_stock"] is False
    assert out["dosages"] == ["25mg", "50mg"]
    assert [p["id"] for p in out["pharmacies"]] == ["boots", "lloyds"]
