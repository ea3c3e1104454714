from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from config.settings import settings
from models.documents import new_price_alert, utcnow
from models.schema import ALERT_ACTIVE, ALERT_CANCELLED
from repos.price_alert_repo import PriceAlertRepository

log = logging.getLogger("medprice.alerts.service")


class AlertNotFound(Exception):
    pass


class AlertNotActive(Exception):
    def __init__(self, status: str):
        super().__init__(f"alert_not_active:{status}")
        self.status = status


class PriceAlertService:
    def __init__(self, repo: Optional[PriceAlertRepository] = None):
        self.repo = repo or PriceAlertRepository()

    def create_or_refresh(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register interest in a price.

        An address can hold one active alert per (medication, dosage). Asking
        again refreshes that alert's target, current price and expiry and
        returns its existing id with created=False.
        """
        email = (data.get("email") or "").strip().lower()
        medication_id = data["medication_id"]
        dosage = data.get("dosage") or None

        existing = self.repo.find_active(email, medication_id, dosage)
        if existing:
            self.repo.update(existing["id"], {
                "target_price": float(data["target_price"]),
                "current_price": float(data["current_price"]),
                "expires_at": utcnow() + timedelta(days=settings.ALERT_EXPIRY_DAYS),
            })
            log.info(
                "price_alert_refreshed",
                extra={"extra": {"event": "price_alert_refreshed", "alert_id": existing["id"], "medication_id": medication_id}},
            )
            return {"id": existing["id"], "created": False}

        alert_id = self.repo.create(new_price_alert({**data, "email": email, "dosage": dosage}))
        log.info(
            "price_alert_created",
            extra={"extra": {"event": "price_alert_created", "alert_id": alert_id, "medication_id": medication_id}},
        )
        return {"id": alert_id, "created": True}

    def cancel(self, alert_id: str) -> None:
        """active -> cancelled. Terminal alerts are left as they are and reported."""
        alert = self.repo.get(alert_id)
        if alert is None:
            raise AlertNotFound(alert_id)
        if alert.get("status") != ALERT_ACTIVE or not self.repo.transition(alert_id, ALERT_CANCELLED):
            current = (self.repo.get(alert_id) or alert).get("status", "")
            raise AlertNotActive(current)

    def list_for_email(self, email: str) -> List[Dict[str, Any]]:
        return self.repo.list_for_email((email or "").strip().lower())
