from __future__ import annotations

import logging
import threading
import uuid
from html import escape
from typing import Any, Callable, Dict, List, Optional

from config.settings import settings
from messaging.batch import send_in_batches
from messaging.dispatcher import MessageDispatcher
from messaging.templates import money, wrap_layout
from models.documents import utcnow
from ops.metrics import Timer
from pricing.aggregation import select_lowest
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository
from repos.price_repo import PriceRepository
from repos.subscription_repo import SubscriptionRepository

log = logging.getLogger("medprice.digest.weekly")

DIGEST_SUBJECT = "Your PriceMyMeds Weekly Digest"


def build_digest_html(medications: List[Dict[str, Any]], unsubscribe_token: Optional[str]) -> str:
    site = settings.SITE_BASE_URL.rstrip("/")
    if medications:
        cards = "".join(
            '<div style="background-color:#f9f9f9;padding:15px;margin:10px 0;border-radius:8px;">'
            f'<h3 style="color:#388e3c;margin:0 0 5px 0;">{escape(m["name"])}</h3>'
            f'<p style="margin:5px 0;">From <strong>{money(m["lowest_price"])}</strong> at {escape(m["pharmacy_name"])}</p>'
            f'<a href="{escape(site)}/medication/{escape(m["id"])}" style="color:#4CAF50;">Compare prices</a>'
            "</div>"
            for m in medications
        )
    else:
        cards = "<p>No featured prices this week.</p>"
    body = (
        '<h1 style="color:#2c3e50;text-align:center;">Weekly Price Updates</h1>'
        "<p>Here are this week's best medication prices from PriceMyMeds.</p>"
        f"{cards}"
    )
    return wrap_layout(
        body,
        footer_text="Thank you for trusting PriceMyMeds to help you find the best medication prices.",
        unsubscribe_token=unsubscribe_token,
    )


class WeeklyDigestJob:
    def __init__(
        self,
        subscriptions: Optional[SubscriptionRepository] = None,
        medications: Optional[MedicationRepository] = None,
        prices: Optional[PriceRepository] = None,
        pharmacies: Optional[PharmacyRepository] = None,
        dispatcher: Optional[MessageDispatcher] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.subscriptions = subscriptions or SubscriptionRepository()
        db = self.subscriptions.db
        self.medications = medications or MedicationRepository(db)
        self.prices = prices or PriceRepository(db)
        self.pharmacies = pharmacies or PharmacyRepository(db)
        self.dispatcher = dispatcher or MessageDispatcher()
        self.sleep = sleep
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def top_medications(self, limit: int) -> List[Dict[str, Any]]:
        ranked = []
        for med in self.medications.list(active_only=True)[: limit * 2]:
            best = select_lowest(self.prices.list_for_medication(med["id"], in_stock=True))
            if best is None:
                continue
            pharmacy = self.pharmacies.get(best["pharmacy_id"]) or {}
            ranked.append({
                "id": med["id"],
                "name": med.get("name", ""),
                "lowest_price": float(best["price"]),
                "pharmacy_name": pharmacy.get("name") or best["pharmacy_id"],
            })
        ranked.sort(key=lambda m: m["lowest_price"])
        return ranked[:limit]

    def run(self) -> Dict[str, Any]:
        if not self._lock.acquire(blocking=False):
            log.info("weekly_digest_skipped", extra={"extra": {"event": "weekly_digest_skipped", "reason": "already_running"}})
            return {"skipped": True}
        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> Dict[str, Any]:
        t = Timer()
        run_id = str(uuid.uuid4())
        recipients = self.subscriptions.list(status="active", preference="weekly_digest")
        if not recipients:
            log.info("weekly_digest_no_recipients", extra={"extra": {"event": "weekly_digest_no_recipients", "run_id": run_id}})
            return {"skipped": False, "run_id": run_id, "sent": 0, "failed": 0, "total": 0}

        meds = self.top_medications(settings.WEEKLY_DIGEST_TOP_N)
        tokens = {r["email"]: r.get("unsubscribe_token") for r in recipients}

        def _send_one(email: str) -> Dict[str, Any]:
            return self.dispatcher.send_email(to=email, subject=DIGEST_SUBJECT, html=build_digest_html(meds, tokens.get(email)))

        kwargs = {"sleep": self.sleep} if self.sleep else {}
        result = send_in_batches(
            list(tokens.keys()),
            _send_one,
            batch_size=settings.NEWSLETTER_BATCH_SIZE,
            delay_sec=settings.EMAIL_BATCH_DELAY_SEC,
            **kwargs,
        )
        if result.sent:
            self.subscriptions.mark_sent(result.sent, utcnow())

        out = {"skipped": False, "run_id": run_id, "medications": len(meds), "sent": len(result.sent),
               "failed": len(result.failed), "total": result.total, "duration_ms": t.ms()}
        log.info("weekly_digest_completed", extra={"extra": {"event": "weekly_digest_completed", **out}})
        return out

    def send_test(self, email: str) -> Dict[str, Any]:
        meds = self.top_medications(settings.WEEKLY_DIGEST_TOP_N)
        return self.dispatcher.send_email(to=email, subject=f"[TEST] {DIGEST_SUBJECT}", html=build_digest_html(meds, "test-token"))
