from __future__ import annotations

from html import escape
from typing import Any, Dict, List, Optional

from config.settings import settings
from messaging.templates import money, wrap_layout

_SECTION = '<div style="margin-bottom:30px;">{}</div>'
_HEADING = '<h2 style="color:#2c3e50;border-bottom:2px solid #4CAF50;padding-bottom:10px;">{}</h2>'
_CARD = '<div style="background-color:#f9f9f9;padding:15px;margin:10px 0;border-radius:8px;">{}</div>'
_PROMO_CARD = ('<div style="background-color:#fff3e0;padding:15px;margin:10px 0;border-radius:8px;'
               'border-left:4px solid #ff9800;">{}</div>')


def _dosage_text(d: Any) -> str:
    if isinstance(d, (list, tuple)):
        return ", ".join(str(x) for x in d)
    return str(d or "")


def _price_drop_card(item: Dict[str, Any]) -> str:
    dosage = _dosage_text(item.get("dosage"))
    return _CARD.format(
        f'<h3 style="color:#388e3c;margin:0 0 5px 0;">{escape(item.get("medication_name", ""))}</h3>'
        + (f'<p style="color:#666;font-size:14px;margin:0;">Dosage: {escape(dosage)}</p>' if dosage else "")
        + f'<p style="font-size:16px;margin:10px 0;">Was: <span style="text-decoration:line-through;color:#999;">'
          f'{money(item.get("old_price"))}</span> Now: <strong style="color:#388e3c;">{money(item.get("new_price"))}</strong></p>'
        + f'<p style="color:#666;font-size:14px;">Available at: {escape(item.get("pharmacy_name", ""))}</p>'
    )


def _new_medication_card(item: Dict[str, Any]) -> str:
    dosage = _dosage_text(item.get("dosage"))
    desc = item.get("description") or ""
    return _CARD.format(
        f'<h3 style="color:#388e3c;margin:0 0 5px 0;">{escape(item.get("medication_name", ""))}</h3>'
        + (f'<p style="color:#666;font-size:14px;margin:0;">Dosage: {escape(dosage)}</p>' if dosage else "")
        + (f'<p style="color:#666;font-size:14px;margin:10px 0;">{escape(desc)}</p>' if desc else "")
        + f'<p style="font-size:16px;margin:5px 0;">Starting from: <strong style="color:#388e3c;">{money(item.get("lowest_price"))}</strong></p>'
        + f'<p style="color:#666;font-size:14px;">Available at: {escape(item.get("pharmacy_name", ""))}</p>'
    )


def _promotion_card(item: Dict[str, Any]) -> str:
    med = item.get("medication_name") or ""
    return _PROMO_CARD.format(
        f'<h3 style="color:#e65100;margin:0 0 10px 0;">{escape(item.get("title", ""))}</h3>'
        f'<p style="color:#333;margin:10px 0;">{escape(item.get("message", ""))}</p>'
        + (f'<p style="color:#666;font-size:14px;">Medication: {escape(med)}</p>' if med else "")
    )


def build_email_content(content: Optional[Dict[str, Any]]) -> str:
    """Body sections of a campaign; user text is escaped, newlines become <br>."""
    if not content:
        return "<p>No content available</p>"
    sections: List[str] = []

    text = content.get("custom_text") or ""
    if text:
        sections.append(_SECTION.format(
            f'<p style="color:#333;line-height:1.6;">{escape(text).replace(chr(10), "<br>")}</p>'
        ))

    drops = content.get("price_drops_data") or []
    if content.get("include_price_drops") and drops:
        sections.append(_SECTION.format(_HEADING.format("Price Drops This Week") + "".join(_price_drop_card(i) for i in drops)))

    meds = content.get("new_medications_data") or []
    if content.get("include_new_medications") and meds:
        sections.append(_SECTION.format(_HEADING.format("New Medications Added") + "".join(_new_medication_card(i) for i in meds)))

    promos = content.get("promotions_data") or []
    if content.get("include_promotions") and promos:
        sections.append(_SECTION.format(_HEADING.format("Current Promotions") + "".join(_promotion_card(i) for i in promos)))

    return "".join(sections)


def render_campaign_email(content: Optional[Dict[str, Any]], unsubscribe_token: Optional[str]) -> str:
    site = escape(settings.SITE_BASE_URL)
    body = (
        '<div style="background-color:#4CAF50;padding:30px;text-align:center;border-radius:10px 10px 0 0;">'
        '<h1 style="color:white;margin:0;">PriceMyMeds</h1>'
        '<p style="color:white;margin:10px 0 0 0;font-size:16px;">Your Medication Price Tracker</p></div>'
        f'<div style="padding:30px;">{build_email_content(content)}'
        '<div style="text-align:center;margin:30px 0;">'
        f'<a href="{site}" style="background-color:#4CAF50;color:white;padding:12px 30px;'
        'text-decoration:none;border-radius:5px;display:inline-block;">Visit PriceMyMeds</a></div></div>'
    )
    return wrap_layout(
        body,
        footer_text="You received this email because you subscribed to PriceMyMeds updates.",
        unsubscribe_token=unsubscribe_token,
    )
