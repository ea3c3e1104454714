import pytest

from alerts.service import AlertNotActive, AlertNotFound, PriceAlertService
from tests.fakes import FakeAlertRepo


def _payload(**overrides):
    data = {
        "email": "Pat@Example.com ",
        "medication_id": "mounjaro",
        "medication_name": "Mounjaro",
        "dosage": "2.5mg",
        "current_price": 150.0,
        "target_price": 130.0,
    }
    data.update(overrides)
    return data


def test_create_then_refresh_returns_same_id():
    repo = FakeAlertRepo()
    svc = PriceAlertService(repo)

    first = svc.create_or_refresh(_payload())
    second = svc.create_or_refresh(_payload(target_price=120.0, current_price=145.0))

    assert first["created"] is True
    assert second == {"id": first["id"], "created": False}
    assert len(repo.rows) == 1
    stored = repo.rows[first["id"]]
    assert stored["email"] == "pat@example.com"
    assert stored["target_price"] == 120.0
    assert stored["current_price"] == 145.0


def test_other_dosage_is_a_separate_alert():
    repo = FakeAlertRepo()
    svc = PriceAlertService(repo)
    a = svc.create_or_refresh(_payload())
    b = svc.create_or_refresh(_payload(dosage="5mg"))
    assert a["id"] != b["id"]
    assert len(repo.rows) == 2


def test_cancel_active_alert():
    repo = FakeAlertRepo()
    svc = PriceAlertService(repo)
    alert_id = svc.create_or_refresh(_payload())["id"]

    svc.cancel(alert_id)

    assert repo.rows[alert_id]["status"] == "cancelled"


def test_cancel_triggered_alert_is_rejected():
    repo = FakeAlertRepo()
    svc = PriceAlertService(repo)
    alert_id = svc.create_or_refresh(_payload())["id"]
    repo.rows[alert_id]["status"] = "triggered"

    with pytest.raises(AlertNotActive) as exc:
        svc.cancel(alert_id)

    assert exc.value.status == "triggered"
    assert repo.rows[alert_id]["status"] == "triggered"


def test_cancel_unknown_alert():
    with pytest.raises(AlertNotFound):
        PriceAlertService(FakeAlertRepo()).cancel("missing")


def test_refresh_after_trigger_creates_new_alert():
    repo = FakeAlertRepo()
    svc = PriceAlertService(repo)
    first = svc.create_or_refresh(_payload())
    repo.rows[first["id"]]["status"] = "triggered"

    again = svc.create_or_refresh(_payload())

    assert again["created"] is True
    assert again["id"] != first["id"]
