from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from models.documents import default_preferences, new_subscription, utcnow
from repos.subscription_repo import SubscriptionRepository
from utils.ids import email_doc_id

log = logging.getLogger("medprice.subscriptions")

PREFERENCE_KEYS = tuple(default_preferences().keys())


class SubscriptionError(Exception):
    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def _clean_preferences(prefs: Optional[Dict[str, Any]]) -> Dict[str, bool]:
    return {k: bool(v) for k, v in (prefs or {}).items() if k in PREFERENCE_KEYS}


class SubscriptionService:
    def __init__(self, repo: Optional[SubscriptionRepository] = None):
        self.repo = repo or SubscriptionRepository()

    def subscribe(self, email: str, source: str = "popup", preferences: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        New address -> created. Unsubscribed address -> reactivated with the
        same unsubscribe token. Already active -> SubscriptionError('already_subscribed').
        """
        email = (email or "").strip().lower()
        if not email:
            raise SubscriptionError("email_required")
        existing = self.repo.get_by_email(email)
        if existing is None:
            doc = self.repo.create(new_subscription(email, source=source, preferences=_clean_preferences(preferences)))
            log.info("subscription_created", extra={"extra": {"event": "subscription_created", "source": source}})
            return {"reactivated": False, "subscription": doc}
        if existing.get("status") == "active":
            raise SubscriptionError("already_subscribed")

        prefs = {**default_preferences(), **(existing.get("preferences") or {}), **_clean_preferences(preferences)}
        self.repo.update(existing["id"], {
            "status": "active",
            "preferences": prefs,
            "subscribed_at": utcnow(),
            "unsubscribed_at": None,
        })
        log.info("subscription_reactivated", extra={"extra": {"event": "subscription_reactivated", "source": source}})
        return {"reactivated": True, "subscription": {**existing, "status": "active", "preferences": prefs}}

    def unsubscribe(self, token: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        if not token and not email:
            raise SubscriptionError("token_or_email_required")
        sub = self.repo.get_by_token(token) if token else self.repo.get_by_email(email or "")
        if sub is None:
            raise SubscriptionError("subscription_not_found")
        self.repo.update(sub["id"], {"status": "unsubscribed", "unsubscribed_at": utcnow()})
        return {**sub, "status": "unsubscribed"}

    def update_preferences(self, email: str, preferences: Dict[str, Any]) -> Dict[str, bool]:
        sub = self.repo.get_by_email(email)
        if sub is None:
            raise SubscriptionError("subscription_not_found")
        prefs = {**default_preferences(), **(sub.get("preferences") or {}), **_clean_preferences(preferences)}
        self.repo.update(email_doc_id(email), {"preferences": prefs})
        return prefs

    def stats(self) -> Dict[str, Any]:
        rows = self.repo.list()
        by_status: Dict[str, int] = {}
        by_source: Dict[str, int] = {}
        for s in rows:
            by_status[s.get("status", "")] = by_status.get(s.get("status", ""), 0) + 1
            by_source[s.get("source", "")] = by_source.get(s.get("source", ""), 0) + 1
        return {"total": len(rows), "by_status": by_status, "by_source": by_source}
