from __future__ import annotations

import logging
import os
import smtplib
import ssl
import time
import uuid
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Dict, Optional

import httpx

from config.settings import settings

log = logging.getLogger("medprice.email")

RESEND_API_URL = "https://api.resend.com/emails"


def _dest_hint(v: str) -> str:
    # user@example.com -> u***@example.com
    v = (v or "").strip()
    if "@" not in v:
        return ""
    local, domain = v.split("@", 1)
    return f"{local[:1]}***@{domain}"


def _sender() -> str:
    return formataddr((settings.EMAIL_FROM_NAME, settings.EMAIL_FROM_ADDRESS or settings.SMTP_USERNAME))


class SmtpEmailClient:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        starttls: Optional[bool] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = int(port or settings.SMTP_PORT)
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.timeout = float(timeout or settings.SMTP_TIMEOUT_SEC)
        self.starttls = settings.SMTP_USE_STARTTLS if starttls is None else starttls
        if not self.username or not self.password:
            raise RuntimeError("SMTP_USERNAME/SMTP_PASSWORD not configured")

    def _connect(self) -> smtplib.SMTP:
        if self.starttls:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.starttls(context=ssl.create_default_context())
            return server
        return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=ssl.create_default_context())

    def send_message(self, to: str, subject: str, html: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        msg = EmailMessage()
        msg["From"] = _sender()
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=(settings.EMAIL_FROM_ADDRESS or "medprice.local").split("@")[-1])
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(html, subtype="html")

        with self._connect() as server:
            server.login(self.username, self.password)
            server.send_message(msg)
        return {"ok": True, "message_id": msg["Message-ID"]}


class ResendEmailClient:
    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.timeout = float(timeout or settings.SMTP_TIMEOUT_SEC)
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY not configured")

    def send_message(self, to: str, subject: str, html: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"from": _sender(), "to": [to], "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        r = httpx.post(
            RESEND_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        try:
            data = r.json()
        except ValueError:
            data = {"text": (r.text or "")[:500]}
        if r.status_code >= 400:
            return {"ok": False, "status_code": r.status_code, "error": data.get("message") or str(data)}
        return {"ok": True, "message_id": data.get("id", "")}


class LogEmailClient:
    """Development transport: records the send in the log only."""

    def send_message(self, to: str, subject: str, html: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        message_id = f"log-{uuid.uuid4()}"
        log.info(
            "email_logged",
            extra={"extra": {"event": "email_logged", "dest": _dest_hint(to), "subject": subject,
                             "bytes": len(html or ""), "message_id": message_id,
                             "revision": os.getenv("K_REVISION") or "", "time_unix": time.time()}},
        )
        return {"ok": True, "message_id": message_id}


def build_email_client(provider: Optional[str] = None):
    provider = (provider or settings.ESP_PROVIDER or "log").strip().lower()
    if provider == "smtp":
        return SmtpEmailClient()
    if provider == "resend":
        return ResendEmailClient()
    if provider == "log":
        return LogEmailClient()
    raise RuntimeError(f"unknown ESP_PROVIDER: {provider}")
