from datetime import datetime, timedelta, timezone

from alerts.engine import PriceAlertEngine
from tests.fakes import FakeAlertDispatcher, FakeAlertRepo, FakePharmacyRepo, FakePriceRepo

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _alert(alert_id, target, status="active", expires_in_days=30, dosage="0.25mg"):
    return {
        "id": alert_id,
        "email": "pat@example.com",
        "medication_id": "ozempic",
        "medication_name": "Ozempic",
        "dosage": dosage,
        "target_price": target,
        "current_price": 120.0,
        "status": status,
        "expires_at": NOW + timedelta(days=expires_in_days),
    }


def _engine(alerts, prices, ok=True):
    dispatcher = FakeAlertDispatcher(ok=ok)
    pharmacies = FakePharmacyRepo([{"id": "boots", "name": "Boots", "rating": 4.5}])
    engine = PriceAlertEngine(alerts=alerts, prices=prices, pharmacies=pharmacies, dispatcher=dispatcher,
                              clock=lambda: NOW)
    return engine, dispatcher


def test_price_equal_to_target_triggers():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 10.00)
    engine, dispatcher = _engine(alerts, prices)

    out = engine.run_cycle()

    assert out["triggered"] == 1
    assert len(dispatcher.calls) == 1
    assert alerts.rows["a1"]["status"] == "triggered"
    assert alerts.rows["a1"]["triggered_at"] == NOW
    assert alerts.rows["a1"]["lowest_pharmacy"] == {"name": "Boots", "price": 10.0}


def test_price_above_target_only_updates_current_price():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 10.01)
    engine, dispatcher = _engine(alerts, prices)

    out = engine.run_cycle()

    assert out["triggered"] == 0
    assert out["updated"] == 1
    assert dispatcher.calls == []
    assert alerts.rows["a1"]["status"] == "active"
    assert alerts.rows["a1"]["current_price"] == 10.01


def test_zero_and_negative_prices_are_ignored():
    alerts = FakeAlertRepo([_alert("a1", 50.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 0)
    prices.add("ozempic", "lloyds", "0.25mg", -5)
    engine, dispatcher = _engine(alerts, prices)

    out = engine.run_cycle()

    assert out["no_price"] == 1
    assert dispatcher.calls == []
    assert alerts.rows["a1"]["status"] == "active"


def test_out_of_stock_rows_do_not_count():
    alerts = FakeAlertRepo([_alert("a1", 50.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 20.0, in_stock=False)
    engine, _ = _engine(alerts, prices)

    assert engine.run_cycle()["no_price"] == 1


def test_expired_alerts_are_swept_not_checked():
    alerts = FakeAlertRepo([_alert("old", 500.0, expires_in_days=-1)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 10.0)
    engine, dispatcher = _engine(alerts, prices)

    out = engine.run_cycle()

    assert out["checked"] == 0
    assert out["expired"] == 1
    assert dispatcher.calls == []
    assert alerts.rows["old"]["status"] == "expired"


def test_triggered_alert_is_not_processed_again():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 9.0)
    engine, dispatcher = _engine(alerts, prices)

    engine.run_cycle()
    second = engine.run_cycle()

    assert second["checked"] == 0
    assert len(dispatcher.calls) == 1


def test_send_failure_leaves_alert_active():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 8.0)
    engine, _ = _engine(alerts, prices, ok=False)

    out = engine.run_cycle()

    assert out["send_failed"] == 1
    assert alerts.rows["a1"]["status"] == "active"
    assert alerts.rows["a1"].get("triggered_at") is None


def test_overlapping_cycle_is_skipped():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    engine, dispatcher = _engine(alerts, FakePriceRepo())

    engine._lock.acquire()
    try:
        assert engine.running
        assert engine.run_cycle() == {"skipped": True}
    finally:
        engine._lock.release()
    assert not engine.running


def test_one_failing_alert_does_not_stop_the_cycle():
    alerts = FakeAlertRepo([_alert("a1", 10.00), {**_alert("bad", 10.00), "medication_id": None}])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 9.0)
    engine, _ = _engine(alerts, prices)

    def _boom(medication_id, dosage=None, in_stock=None):
        if medication_id is None:
            raise RuntimeError("bad row")
        return FakePriceRepo.list_for_medication(prices, medication_id, dosage=dosage, in_stock=in_stock)

    prices.list_for_medication = _boom
    out = engine.run_cycle()

    assert out["errors"] == 1
    assert out["triggered"] == 1


class _CancellingDispatcher(FakeAlertDispatcher):
    """Cancels the alert from another path while the email is being sent."""

    def __init__(self, alerts):
        super().__init__(ok=True)
        self.alerts = alerts

    def dispatch_price_drop(self, alert, current_price, cycle_id=None):
        self.alerts.rows[alert["id"]]["status"] = "cancelled"
        return super().dispatch_price_drop(alert, current_price, cycle_id=cycle_id)


def test_alert_cancelled_during_send_is_not_counted_as_triggered():
    alerts = FakeAlertRepo([_alert("a1", 10.00)])
    prices = FakePriceRepo()
    prices.add("ozempic", "boots", "0.25mg", 9.00)
    dispatcher = _CancellingDispatcher(alerts)
    engine = PriceAlertEngine(alerts=alerts, prices=prices,
                              pharmacies=FakePharmacyRepo([{"id": "boots", "name": "Boots", "rating": 4.5}]),
                              dispatcher=dispatcher, clock=lambda: NOW)

    out = engine.run_cycle()

    assert out["triggered"] == 0
    assert out["transition_lost"] == 1
    assert len(dispatcher.calls) == 1
    assert alerts.rows["a1"]["status"] == "cancelled"
    assert "triggered_at" not in alerts.rows["a1"]
