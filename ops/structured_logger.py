from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

from config.settings import settings
from utils.request_context import get_request_id

# Loggers that are chatty at INFO (httpx logs full request URLs).
_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "google.auth")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, shaped for Cloud Logging."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time_unix": time.time(),
            "service": os.getenv("K_SERVICE") or "medprice",
            "revision": os.getenv("K_REVISION") or "",
            "environment": settings.ENVIRONMENT,
        }
        rid = get_request_id()
        if rid:
            payload["request_id"] = rid
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel((level or settings.LOG_LEVEL).upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
