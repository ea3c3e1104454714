"""
Document factories.

Derived fields (slugs, timestamps, tokens, read time, expiry) are computed
here when a document is built, not by store-side hooks.
"""
from __future__ import annotations

import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from config.settings import settings
from models.schema import ALERT_ACTIVE
from utils.slugs import blog_slug, medication_slug, pharmacy_slug


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_preferences() -> Dict[str, bool]:
    return {"price_drops": True, "new_medications": True, "promotions": True, "weekly_digest": False}


def new_medication(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    med_id = data.get("id") or medication_slug(data.get("name", ""))
    return {
        "id": med_id,
        "name": (data.get("name") or "").strip(),
        "category": data.get("category") or "",
        "subcategory": data.get("subcategory") or "",
        "description": data.get("description") or "",
        "dosage": [str(d) for d in (data.get("dosage") or [])],
        "form": data.get("form") or "",
        "generic_name": data.get("generic_name") or "",
        "search_terms": list(data.get("search_terms") or []),
        "active": bool(data.get("active", True)),
        "created_at": now,
        "updated_at": now,
    }


def new_pharmacy(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    rating = float(data.get("rating") or 0)
    return {
        "id": data.get("id") or pharmacy_slug(data.get("name", "")),
        "name": (data.get("name") or "").strip(),
        "website": data.get("website") or "#",
        "rating": max(0.0, min(5.0, rating)),
        "delivery_time": data.get("delivery_time") or "1-3 days",
        "prescription_required": bool(data.get("prescription_required", True)),
        "logo": data.get("logo") or "",
        "active": bool(data.get("active", True)),
        "verified": bool(data.get("verified", False)),
        "created_at": now,
        "updated_at": now,
    }


def new_price(
    medication_id: str,
    pharmacy_id: str,
    dosage: str,
    price: float,
    link: str = "",
    source: str = "manual",
    in_stock: bool = True,
    quantity: int = 1,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    return {
        "medication_id": medication_id,
        "pharmacy_id": pharmacy_id,
        "dosage": str(dosage),
        "price": float(price),
        "quantity": int(quantity),
        "in_stock": bool(in_stock),
        "link": link or "",
        "source": source,
        "last_updated": now or utcnow(),
    }


def new_price_alert(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "email": (data.get("email") or "").strip().lower(),
        "medication_id": data["medication_id"],
        "medication_name": data.get("medication_name") or "",
        "dosage": data.get("dosage") or None,
        "current_price": float(data["current_price"]),
        "target_price": float(data["target_price"]),
        "lowest_pharmacy": data.get("lowest_pharmacy"),
        "status": ALERT_ACTIVE,
        "triggered_at": None,
        "expires_at": now + timedelta(days=settings.ALERT_EXPIRY_DAYS),
        "created_at": now,
        "ip_address": data.get("ip_address") or "",
        "user_agent": data.get("user_agent") or "",
    }


def new_subscription(email: str, source: str = "popup", preferences: Optional[Dict[str, bool]] = None,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    prefs = default_preferences()
    prefs.update(preferences or {})
    return {
        "email": email.strip().lower(),
        "preferences": prefs,
        "status": "active",
        "unsubscribe_token": secrets.token_hex(32),
        "source": source,
        "emails_sent_count": 0,
        "last_email_sent": None,
        "subscribed_at": now,
        "unsubscribed_at": None,
    }


def read_time_minutes(content: str) -> int:
    words = len((content or "").split())
    return max(1, math.ceil(words / 200))


def new_blog_post(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    content = data.get("content") or ""
    published = bool(data.get("published", False))
    return {
        "slug": data.get("slug") or blog_slug(data.get("title", "")),
        "title": (data.get("title") or "").strip(),
        "excerpt": (data.get("excerpt") or "")[:300],
        "content": content,
        "author": data.get("author") or "PriceMyMeds Team",
        "category": data.get("category") or "General Health",
        "tags": list(data.get("tags") or []),
        "featured_image": data.get("featured_image") or "",
        "meta_description": (data.get("meta_description") or "")[:160],
        "meta_keywords": list(data.get("meta_keywords") or []),
        "read_time": read_time_minutes(content),
        "published": published,
        "publish_date": data.get("publish_date") or (now if published else None),
        "last_updated": now,
        "created_at": now,
    }


def new_campaign(subject: str, content: Dict[str, Any], target_audience: str, sent_by: str,
                 test_email: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "subject": subject,
        "content": content,
        "target_audience": target_audience,
        "recipients": [],
        "recipient_count": 0,
        "stats": {"total_sent": 0, "total_failed": 0, "total_bounced": 0},
        "status": "draft",
        "sent_by": sent_by,
        "test_email": test_email,
        "sent_at": None,
        "created_at": now,
    }


def new_admin_message(data: Dict[str, Any], created_by: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "medication_id": data["medication_id"],
        "medication_name": data.get("medication_name") or "",
        "category": data.get("category") or "information",
        "title": data.get("title") or "",
        "message": data.get("message") or "",
        "active": bool(data.get("active", True)),
        "start_date": data.get("start_date") or now,
        "end_date": data.get("end_date"),
        "priority": int(data.get("priority") or 0),
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }


def message_is_current(msg: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if not msg.get("active"):
        return False
    start = msg.get("start_date")
    end = msg.get("end_date")
    if start and start > now:
        return False
    return end is None or end > now


def subcategory_entries(category_id: str, subs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for i, s in enumerate(subs):
        out.append({
            "id": s["id"],
            "name": s.get("name") or s["id"],
            "category_id": category_id,
            "order": int(s.get("order", i)),
            "active": bool(s.get("active", True)),
        })
    return out
