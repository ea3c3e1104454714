from __future__ import annotations

from html import escape
from typing import Any, Dict

from config.settings import settings
from messaging.templates import money, wrap_layout


def _price_text(v: Any) -> str:
    try:
        return f"{float(v):.2f}"
    except (TypeError, ValueError):
        return str(v)


def format_price_alert_subject(alert: Dict[str, Any], current_price: float) -> str:
    return f"Price Alert: {alert.get('medication_name') or alert.get('medication_id')} is now £{_price_text(current_price)}!"


def format_price_alert_email(alert: Dict[str, Any], current_price: float) -> str:
    name = escape(alert.get("medication_name") or alert.get("medication_id") or "")
    dosage = alert.get("dosage") or ""
    pharmacy = (alert.get("lowest_pharmacy") or {}).get("name") or ""
    site = escape(settings.SITE_BASE_URL)

    dosage_line = f'<p style="color:#666;margin:5px 0;">Dosage: {escape(dosage)}</p>' if dosage else ""
    pharmacy_line = (
        f'<p style="font-size:14px;color:#666;margin-top:10px;">Available at: <strong>{escape(pharmacy)}</strong></p>'
        if pharmacy else ""
    )
    body = (
        '<h1 style="color:#2c3e50;text-align:center;">Price Drop Alert!</h1>'
        '<div style="background-color:#e8f5e9;padding:20px;border-radius:10px;margin:20px 0;">'
        f'<h2 style="color:#388e3c;margin:0;">{name}</h2>'
        f"{dosage_line}"
        f'<p style="font-size:16px;margin:5px 0;"><strong>Your target price:</strong> {money(alert.get("target_price"))}</p>'
        f'<p style="font-size:20px;color:#388e3c;margin:5px 0;"><strong>Current price:</strong> {money(current_price)}</p>'
        f"{pharmacy_line}"
        "</div>"
        '<div style="text-align:center;margin:30px 0;">'
        f'<a href="{site}" style="background-color:#4CAF50;color:white;padding:12px 30px;'
        'text-decoration:none;border-radius:5px;display:inline-block;">View on PriceMyMeds</a>'
        "</div>"
    )
    return wrap_layout(body, footer_text="You received this email because you set up a price alert on PriceMyMeds.")
