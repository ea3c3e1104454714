from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter

from config.settings import settings
from jobs.scheduler import describe_jobs
from models.schema import COL_SYSTEM
from ops.metrics import Timer
from storage.firestore_client import get_firestore_client

router = APIRouter()


def _firestore_probe(timeout_s: float = 0.20) -> Dict[str, Any]:
    """Single bounded read of system/healthz; never writes."""
    t = Timer()
    try:
        get_firestore_client().collection(COL_SYSTEM).document("healthz").get(timeout=timeout_s)
    except Exception as e:
        return {"ok": False, "error_type": type(e).__name__, "message": str(e)}
    return {"ok": True, "latency_ms": t.ms()}


def _email_configured() -> bool:
    provider = settings.ESP_PROVIDER.strip().lower()
    if provider == "smtp":
        return bool(settings.SMTP_USERNAME and settings.SMTP_PASSWORD)
    if provider == "resend":
        return bool(settings.RESEND_API_KEY)
    return provider == "log"


@router.get("/health")
def health():
    fs = _firestore_probe()
    return {
        "ok": fs["ok"],
        "service": "medprice-api",
        "revision": os.getenv("K_REVISION") or "",
        "environment": settings.ENVIRONMENT,
        "firestore": fs,
        "email": {"provider": settings.ESP_PROVIDER, "configured": _email_configured()},
        "scheduler": {"enabled": settings.SCHEDULER_ENABLED, "jobs": describe_jobs()},
        "time_unix": time.time(),
    }
