from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from messaging.email import _dest_hint, build_email_client
from ops.metrics import Timer

log = logging.getLogger("medprice.dispatcher")


class MessageDispatcher:
    """
    Single entry point for outbound email.

    `send_email` never raises: transport errors come back as
    {"ok": False, "error": ..., "error_type": ...}. The transport is built
    lazily from ESP_PROVIDER unless one is passed in.
    """

    def __init__(self, email=None):
        self.email = email

    def _log_fields(self, to: str) -> Dict[str, Any]:
        return {"channel": "email", "dest": _dest_hint(to), "revision": os.getenv("K_REVISION") or ""}

    def send_email(self, to: str, subject: str, html: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        t = Timer()
        fields = self._log_fields(to)
        log.info("message_send_attempt", extra={"extra": {"event": "message_send_attempt", **fields}})
        try:
            if self.email is None:
                self.email = build_email_client()
            resp = self.email.send_message(to=to, subject=subject, html=html, reply_to=reply_to)
        except Exception as e:
            log.error(
                "message_send_exception",
                extra={"extra": {"event": "message_send_exception", **fields, "latency_ms": t.ms(),
                                 "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            return {"ok": False, "error_type": type(e).__name__, "error": str(e)}

        ok = bool(resp.get("ok", False))
        log.info("message_send_result",
                 extra={"extra": {"event": "message_send_result", **fields, "ok": ok, "latency_ms": t.ms()}})
        if not ok and "error" not in resp:
            resp = {**resp, "error": "send_failed"}
        return resp
