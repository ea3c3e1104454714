from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator


@dataclass
class Timer:
    start: float = field(default_factory=time.monotonic)

    def ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)


@contextmanager
def timed_job(log: logging.Logger, job: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Wrap one background job run.

    Logs `scheduled_job_completed` with its duration, or `scheduled_job_failed`
    with the error; the error is not re-raised so the scheduler keeps running.
    The yielded dict is merged into the completion log.
    """
    t = Timer()
    out: Dict[str, Any] = {}
    try:
        yield out
    except Exception as e:
        log.error(
            "scheduled_job_failed",
            extra={"extra": {"event": "scheduled_job_failed", "job": job, **fields, "duration_ms": t.ms(),
                             "error_type": type(e).__name__, "message": str(e)}},
            exc_info=True,
        )
        return
    log.info(
        "scheduled_job_completed",
        extra={"extra": {"event": "scheduled_job_completed", "job": job, **fields, **out, "duration_ms": t.ms()}},
    )
