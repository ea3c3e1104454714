from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from alerts.dispatch import AlertDispatcher
from models.documents import utcnow
from models.schema import ALERT_EXPIRED, ALERT_TRIGGERED
from ops.metrics import Timer
from pricing.aggregation import select_lowest
from repos.pharmacy_repo import PharmacyRepository
from repos.price_alert_repo import PriceAlertRepository
from repos.price_repo import PriceRepository

log = logging.getLogger("medprice.alerts.engine")


class PriceAlertEngine:
    """
    Periodic scan of active price alerts.

    One instance is shared by the scheduler and the admin "run now" endpoint;
    its lock makes overlapping cycles skip instead of running twice.
    """

    def __init__(
        self,
        alerts: Optional[PriceAlertRepository] = None,
        prices: Optional[PriceRepository] = None,
        pharmacies: Optional[PharmacyRepository] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.alerts = alerts or PriceAlertRepository()
        self.prices = prices or PriceRepository(self.alerts.db)
        self.pharmacies = pharmacies or PharmacyRepository(self.alerts.db)
        self.dispatcher = dispatcher or AlertDispatcher()
        self.clock = clock
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run_cycle(self) -> Dict[str, Any]:
        if not self._lock.acquire(blocking=False):
            log.info("price_alert_cycle_skipped", extra={"extra": {"event": "price_alert_cycle_skipped", "reason": "already_running"}})
            return {"skipped": True}
        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> Dict[str, Any]:
        t = Timer()
        cycle_id = str(uuid.uuid4())
        now = self.clock()
        counts = {"checked": 0, "triggered": 0, "send_failed": 0, "no_price": 0, "updated": 0,
                  "transition_lost": 0, "errors": 0, "expired": 0}

        active = self.alerts.list_active_unexpired(now)
        log.info(
            "price_alert_cycle_started",
            extra={"extra": {"event": "price_alert_cycle_started", "cycle_id": cycle_id, "active": len(active)}},
        )

        for alert in active:
            counts["checked"] += 1
            try:
                outcome = self._process(alert, now, cycle_id)
                counts[outcome] += 1
            except Exception as e:
                counts["errors"] += 1
                log.error(
                    "price_alert_check_failed",
                    extra={"extra": {"event": "price_alert_check_failed", "cycle_id": cycle_id, "alert_id": alert.get("id"),
                                     "error_type": type(e).__name__, "message": str(e)}},
                    exc_info=True,
                )

        counts["expired"] = self.expire_due(now)
        result = {"cycle_id": cycle_id, "skipped": False, **counts, "duration_ms": t.ms()}
        log.info("price_alert_cycle_completed", extra={"extra": {"event": "price_alert_cycle_completed", **result}})
        return result

    def _process(self, alert: Dict[str, Any], now: datetime, cycle_id: str) -> str:
        rows = self.prices.list_for_medication(alert["medication_id"], dosage=alert.get("dosage") or None, in_stock=True)
        lowest = select_lowest(rows)
        if lowest is None:
            return "no_price"

        current = float(lowest["price"])
        pharmacy = self.pharmacies.get(lowest["pharmacy_id"]) or {}
        snapshot = {"name": pharmacy.get("name") or lowest["pharmacy_id"], "price": current}

        if current <= float(alert["target_price"]):
            resp = self.dispatcher.dispatch_price_drop({**alert, "lowest_pharmacy": snapshot}, current, cycle_id=cycle_id)
            if not resp.get("ok"):
                # stays active; the next cycle retries
                log.warning(
                    "price_alert_send_failed",
                    extra={"extra": {"event": "price_alert_send_failed", "cycle_id": cycle_id, "alert_id": alert.get("id"),
                                     "error": resp.get("error")}},
                )
                return "send_failed"
            moved = self.alerts.transition(alert["id"], ALERT_TRIGGERED, {
                "triggered_at": now,
                "current_price": current,
                "lowest_pharmacy": snapshot,
            })
            if not moved:
                # cancelled or expired while the email was in flight
                log.warning(
                    "price_alert_transition_lost",
                    extra={"extra": {"event": "price_alert_transition_lost", "cycle_id": cycle_id,
                                     "alert_id": alert.get("id"), "current_price": current}},
                )
                return "transition_lost"
            return "triggered"

        self.alerts.update(alert["id"], {"current_price": current, "lowest_pharmacy": snapshot})
        return "updated"

    def expire_due(self, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        expired = 0
        for alert in self.alerts.list_active_expired(now):
            if self.alerts.transition(alert["id"], ALERT_EXPIRED):
                expired += 1
        return expired
