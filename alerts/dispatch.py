from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from alerts.formatter import format_price_alert_email, format_price_alert_subject
from messaging.dispatcher import MessageDispatcher
from ops.metrics import Timer

log = logging.getLogger("medprice.alerts")


class AlertDispatcher:
    """Renders a triggered price alert and hands it to the email dispatcher."""

    def __init__(self, dispatcher: Optional[MessageDispatcher] = None):
        self.dispatcher = dispatcher or MessageDispatcher()

    def dispatch_price_drop(self, alert: Dict[str, Any], current_price: float, cycle_id: Optional[str] = None) -> Dict[str, Any]:
        t = Timer()
        fields = {
            "alert_id": alert.get("id"),
            "medication_id": alert.get("medication_id"),
            "dosage": alert.get("dosage"),
            "cycle_id": cycle_id,
        }
        log.info(
            "alert_send_attempt",
            extra={"extra": {"event": "alert_send_attempt", **fields,
                             "target_price": alert.get("target_price"), "current_price": current_price}},
        )
        resp = self.dispatcher.send_email(
            to=alert["email"],
            subject=format_price_alert_subject(alert, current_price),
            html=format_price_alert_email(alert, current_price),
        )
        log.info(
            "alert_send_result",
            extra={"extra": {"event": "alert_send_result", **fields, "ok": bool(resp.get("ok")), "latency_ms": t.ms()}},
        )
        return resp
