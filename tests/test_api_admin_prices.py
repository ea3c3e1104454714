import pytest
from fastapi.testclient import TestClient

import repos.base
from app.api_service import app
from security.operator_auth import require_operator_auth
from tests.fakes import FakeFirestore


@pytest.fixture
def db(monkeypatch):
    db = FakeFirestore()
    db.collection("medications").document("finasteride").set({"name": "Finasteride", "active": True})
    db.collection("pharmacies").document("boots").set({"name": "Boots", "active": True})
    monkeypatch.setattr(repos.base, "get_firestore_client", lambda: db)
    return db


@pytest.fixture
def client():
    app.dependency_overrides[require_operator_auth] = lambda: {"email": "ops@example.com", "sub": "1"}
    yield TestClient(app)
    app.dependency_overrides.clear()


def _price(**overrides):
    row = {"medication_id": "finasteride", "pharmacy_id": "boots", "dosage": "1mg", "price": 20.0}
    row.update(overrides)
    return row


def test_bulk_upsert_rejects_unknown_slugs_and_writes_nothing(client, db):
    body = {"prices": [_price(), _price(medication_id="mystery"), _price(pharmacy_id="nowhere")]}

    r = client.post("/admin/prices/bulk", json=body)

    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["error"] == "unknown_references"
    assert detail["medications"] == ["mystery"]
    assert detail["pharmacies"] == ["nowhere"]
    assert db.data.get("prices", {}) == {}


def test_bulk_upsert_reports_created_and_modified(client, db):
    first = client.post("/admin/prices/bulk", json={"prices": [_price()]})
    assert first.json()["upserted"] == 1

    second = client.post("/admin/prices/bulk", json={"prices": [_price(price=18.0), _price(dosage="5mg")]})

    assert second.status_code == 200
    assert second.json() == {"ok": True, "modified": 1, "upserted": 1}
    assert len(db.data["prices"]) == 2
