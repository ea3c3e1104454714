from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from campaigns.formatter import render_campaign_email
from config.settings import settings
from messaging.batch import send_in_batches
from messaging.dispatcher import MessageDispatcher
from models.documents import new_campaign, utcnow
from ops.metrics import Timer
from pricing.aggregation import select_lowest
from repos.campaign_repo import CampaignRepository
from repos.content_repo import AdminMessageRepository
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository
from repos.price_repo import PriceRepository
from repos.subscription_repo import SubscriptionRepository

log = logging.getLogger("medprice.campaigns")

# audience -> preference flag; "all" has no preference filter
AUDIENCE_PREFERENCES: Dict[str, Optional[str]] = {
    "all": None,
    "price_drops": "price_drops",
    "new_medications": "new_medications",
    "promotions": "promotions",
    "weekly_digest": "weekly_digest",
}


class CampaignNotFound(Exception):
    pass


class CampaignService:
    def __init__(
        self,
        campaigns: Optional[CampaignRepository] = None,
        subscriptions: Optional[SubscriptionRepository] = None,
        medications: Optional[MedicationRepository] = None,
        prices: Optional[PriceRepository] = None,
        pharmacies: Optional[PharmacyRepository] = None,
        messages: Optional[AdminMessageRepository] = None,
        dispatcher: Optional[MessageDispatcher] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.campaigns = campaigns or CampaignRepository()
        db = self.campaigns.db
        self.subscriptions = subscriptions or SubscriptionRepository(db)
        self.medications = medications or MedicationRepository(db)
        self.prices = prices or PriceRepository(db)
        self.pharmacies = pharmacies or PharmacyRepository(db)
        self.messages = messages or AdminMessageRepository(db)
        self.dispatcher = dispatcher or MessageDispatcher()
        self.sleep = sleep

    # -------- Composer data --------
    def new_medications_this_week(self) -> List[Dict[str, Any]]:
        since = utcnow() - timedelta(days=7)
        out = []
        for med in self.medications.list_created_since(since, limit=20):
            best = select_lowest(self.prices.list_for_medication(med["id"], in_stock=True))
            if best is None:
                continue
            pharmacy = self.pharmacies.get(best["pharmacy_id"]) or {}
            out.append({
                "medication_id": med["id"],
                "medication_name": med.get("name", ""),
                "dosage": med.get("dosage") or [],
                "description": med.get("description", ""),
                "lowest_price": float(best["price"]),
                "pharmacy_name": pharmacy.get("name") or "Unknown",
            })
        return out

    def price_drops_this_week(self) -> List[Dict[str, Any]]:
        # Prices are stored as current values only; there is no history to diff against.
        return []

    def promotions_this_week(self) -> List[Dict[str, Any]]:
        since = utcnow() - timedelta(days=7)
        rows = [m for m in self.messages.list(category="promo")
                if m.get("active") and m.get("created_at") and m["created_at"] >= since]
        return [{
            "title": m.get("title", ""),
            "message": m.get("message", ""),
            "medication_name": m.get("medication_name", ""),
        } for m in rows[:20]]

    def subscriber_counts(self) -> Dict[str, int]:
        active = self.subscriptions.list(status="active")
        counts = {"all": len(active)}
        for audience, pref in AUDIENCE_PREFERENCES.items():
            if pref:
                counts[audience] = sum(1 for s in active if (s.get("preferences") or {}).get(pref))
        return counts

    def composer_data(self) -> Dict[str, Any]:
        return {
            "new_medications": self.new_medications_this_week(),
            "price_drops": self.price_drops_this_week(),
            "promotions": self.promotions_this_week(),
            "subscriber_counts": self.subscriber_counts(),
        }

    def get_recipients(self, audience: str) -> List[Dict[str, Any]]:
        if audience not in AUDIENCE_PREFERENCES:
            return []
        return self.subscriptions.list(status="active", preference=AUDIENCE_PREFERENCES[audience])

    # -------- Sending --------
    def preview(self, content: Dict[str, Any]) -> str:
        return render_campaign_email(content, unsubscribe_token="preview")

    def send_test(self, subject: str, content: Dict[str, Any], test_email: str, sent_by: str) -> Dict[str, Any]:
        doc = new_campaign(subject, content, "test", sent_by, test_email=test_email)
        campaign_id = self.campaigns.create(doc)
        resp = self.dispatcher.send_email(
            to=test_email,
            subject=f"[TEST] {subject}",
            html=render_campaign_email(content, unsubscribe_token="test-token"),
        )
        ok = bool(resp.get("ok"))
        outcome = {"email": test_email, "sent_at": utcnow(), "status": "sent" if ok else "failed",
                   "error": None if ok else resp.get("error")}
        self.campaigns.update(campaign_id, {
            "recipients": [outcome],
            "recipient_count": 1,
            "stats": {"total_sent": int(ok), "total_failed": int(not ok), "total_bounced": 0},
            "status": "sent" if ok else "failed",
            "sent_at": outcome["sent_at"],
        })
        return {"campaign_id": campaign_id, "ok": ok, "error": outcome["error"]}

    def create(self, subject: str, content: Dict[str, Any], audience: str, sent_by: str) -> str:
        return self.campaigns.create(new_campaign(subject, content, audience, sent_by))

    def send_campaign(self, campaign_id: str) -> Dict[str, Any]:
        """
        Deliver a campaign to its audience.

        Progress (recipients, stats) is saved after every chunk. The campaign
        ends `sent` even with per-recipient failures; an unexpected error marks
        it `failed` and is re-raised.
        """
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFound(campaign_id)

        t = Timer()
        self.campaigns.update(campaign_id, {"status": "sending"})
        try:
            recipients = self.get_recipients(campaign.get("target_audience", ""))
            tokens = {r["email"]: r.get("unsubscribe_token") for r in recipients}
            subject = campaign.get("subject", "")
            content = campaign.get("content") or {}

            def _send_one(email: str) -> Dict[str, Any]:
                return self.dispatcher.send_email(
                    to=email, subject=subject, html=render_campaign_email(content, tokens.get(email)),
                )

            kwargs = {"sleep": self.sleep} if self.sleep else {}
            result = send_in_batches(
                list(tokens.keys()),
                _send_one,
                batch_size=settings.CAMPAIGN_BATCH_SIZE,
                delay_sec=settings.EMAIL_BATCH_DELAY_SEC,
                on_batch=lambda outcomes: self.campaigns.append_outcomes(campaign_id, outcomes),
                **kwargs,
            )

            now = utcnow()
            self.campaigns.update(campaign_id, {"status": "sent", "recipient_count": result.total, "sent_at": now})
            if result.sent:
                self.subscriptions.mark_sent(result.sent, now)
        except Exception as e:
            log.error(
                "campaign_send_failed",
                extra={"extra": {"event": "campaign_send_failed", "campaign_id": campaign_id,
                                 "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            self.campaigns.update(campaign_id, {"status": "failed"})
            raise

        summary = {"campaign_id": campaign_id, "status": "sent", **result.as_dict(), "duration_ms": t.ms()}
        log.info("campaign_send_completed", extra={"extra": {"event": "campaign_send_completed",
                                                            **{k: v for k, v in summary.items() if k != "failures"}}})
        return summary
