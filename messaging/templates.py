from __future__ import annotations

from html import escape
from typing import Any, Dict, Optional

from config.settings import settings


def money(v: Any) -> str:
    try:
        return f"£{float(v):.2f}"
    except (TypeError, ValueError):
        return "£-"


def unsubscribe_url(token: str) -> str:
    return f"{settings.SITE_BASE_URL.rstrip('/')}/unsubscribe?token={escape(token or '')}"


def wrap_layout(body_html: str, footer_text: str = "", unsubscribe_token: Optional[str] = None) -> str:
    site = escape(settings.SITE_BASE_URL)
    links = f'<a href="{site}" style="color:#4CAF50;">Visit PriceMyMeds</a>'
    if unsubscribe_token:
        links = f'<a href="{unsubscribe_url(unsubscribe_token)}" style="color:#4CAF50;">Unsubscribe</a> | ' + links
    footer = f'<p style="color:#666;font-size:12px;">{escape(footer_text)}</p>' if footer_text else ""
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;">'
        f"{body_html}"
        '<hr style="border:none;border-top:1px solid #eee;margin:30px 0;">'
        f"{footer}"
        f'<p style="color:#666;font-size:12px;text-align:center;">{links}</p>'
        "</div>"
    )


def contact_notification(contact: Dict[str, Any]) -> Dict[str, str]:
    subject = f"Contact Form: {contact.get('subject', '')}"
    body = (
        '<h2 style="color:#2c3e50;">New contact form submission</h2>'
        f"<p><strong>Name:</strong> {escape(contact.get('name', ''))}</p>"
        f"<p><strong>Email:</strong> {escape(contact.get('email', ''))}</p>"
        f"<p><strong>Subject:</strong> {escape(contact.get('subject', ''))}</p>"
        '<div style="background:#f5f5f5;padding:15px;border-radius:5px;white-space:pre-wrap;">'
        f"{escape(contact.get('message', ''))}</div>"
    )
    return {"subject": subject, "html": wrap_layout(body)}
