from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from alerts.engine import PriceAlertEngine
from config.settings import settings
from digest.weekly import WeeklyDigestJob
from ops.metrics import timed_job

log = logging.getLogger("medprice.jobs.scheduler")

_scheduler: Optional[BackgroundScheduler] = None


@lru_cache(maxsize=1)
def get_alert_engine() -> PriceAlertEngine:
    # One instance per process so its reentrancy lock covers scheduled and manual runs.
    return PriceAlertEngine()


@lru_cache(maxsize=1)
def get_digest_job() -> WeeklyDigestJob:
    return WeeklyDigestJob()


def _run_alert_scan() -> None:
    with timed_job(log, "price_alert_scan") as out:
        out["skipped"] = get_alert_engine().run_cycle().get("skipped", False)


def _run_weekly_digest() -> None:
    with timed_job(log, "weekly_digest") as out:
        out["skipped"] = get_digest_job().run().get("skipped", False)


def build_scheduler(scheduler: Optional[BackgroundScheduler] = None) -> BackgroundScheduler:
    scheduler = scheduler or BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        _run_alert_scan,
        CronTrigger.from_crontab(settings.PRICE_ALERT_CRON, timezone="UTC"),
        id="price_alert_scan",
        name="Price alert scan",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _run_weekly_digest,
        CronTrigger.from_crontab(settings.WEEKLY_DIGEST_CRON, timezone="UTC"),
        id="weekly_digest",
        name="Weekly digest",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if settings.ENVIRONMENT == "production":
        run_at = datetime.now(timezone.utc) + timedelta(seconds=settings.STARTUP_ALERT_SCAN_DELAY_SEC)
        scheduler.add_job(_run_alert_scan, DateTrigger(run_date=run_at), id="price_alert_scan_startup",
                          name="Price alert scan (startup)", replace_existing=True)
    return scheduler


def start_scheduler() -> Optional[BackgroundScheduler]:
    global _scheduler
    if not settings.SCHEDULER_ENABLED:
        log.info("scheduler_disabled", extra={"extra": {"event": "scheduler_disabled"}})
        return None
    if _scheduler is not None and _scheduler.running:
        return _scheduler
    _scheduler = build_scheduler()
    _scheduler.start()
    log.info("scheduler_started", extra={"extra": {"event": "scheduler_started", "jobs": describe_jobs(_scheduler)}})
    return _scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        log.info("scheduler_stopped", extra={"extra": {"event": "scheduler_stopped"}})
    _scheduler = None


def describe_jobs(scheduler: Optional[BackgroundScheduler] = None) -> List[Dict[str, Any]]:
    scheduler = scheduler or _scheduler
    if scheduler is None:
        return []
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "trigger": str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
