from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from models.documents import utcnow

log = logging.getLogger("medprice.messaging.batch")

SendOne = Callable[[str], Dict[str, Any]]


@dataclass
class BatchResult:
    sent: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)
    total: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {"sent": len(self.sent), "failed": len(self.failed), "total": self.total, "failures": self.failed}


def _attempt(send_one: SendOne, email: str) -> Dict[str, Any]:
    try:
        resp = send_one(email) or {}
    except Exception as e:
        log.warning(
            "batch_send_exception",
            extra={"extra": {"event": "batch_send_exception", "error_type": type(e).__name__, "message": str(e)}},
        )
        resp = {"ok": False, "error": str(e) or type(e).__name__}
    ok = bool(resp.get("ok"))
    return {
        "email": email,
        "sent_at": utcnow(),
        "status": "sent" if ok else "failed",
        "error": None if ok else str(resp.get("error") or resp.get("message") or "send_failed"),
    }


def send_in_batches(
    recipients: Sequence[str],
    send_one: SendOne,
    batch_size: int,
    delay_sec: float,
    on_batch: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """
    Send to every recipient in chunks of `batch_size`.

    A chunk is sent concurrently and fully awaited before the next one; a
    `delay_sec` pause separates chunks. A failed or raising `send_one` marks
    that recipient failed and never stops the run.
    """
    size = max(1, int(batch_size))
    result = BatchResult(total=len(recipients))
    chunks = [list(recipients[i:i + size]) for i in range(0, len(recipients), size)]

    for n, chunk in enumerate(chunks):
        with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
            outcomes = list(pool.map(lambda e: _attempt(send_one, e), chunk))
        for o in outcomes:
            if o["status"] == "sent":
                result.sent.append(o["email"])
            else:
                result.failed.append({"email": o["email"], "error": o["error"]})
        if on_batch is not None:
            on_batch(outcomes)
        log.info(
            "batch_chunk_done",
            extra={"extra": {"event": "batch_chunk_done", "chunk": n + 1, "chunks": len(chunks),
                             "sent": len(result.sent), "failed": len(result.failed)}},
        )
        if delay_sec > 0 and n < len(chunks) - 1:
            sleep(delay_sec)
    return result
