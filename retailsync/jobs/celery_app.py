"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from retailsync.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
RETRY_DELAY_SECONDS = int(os.environ.get("SYNC_RETRY_DELAY", "600"))

celery_app = Celery("retailsync", broker=broker_url, backend=backend_url, include=["retailsync.jobs.daily"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "nightly-sync": {
        "task": "retailsync.jobs.daily.run_daily_sync",
        "schedule": crontab(hour=int(os.environ.get("SYNC_HOUR", "2")), minute=int(os.environ.get("SYNC_MINUTE", "0"))),
    },
}


@celery_app.task(name="retailsync.jobs.daily.run_daily_sync", bind=True, max_retries=3)
def run_daily_sync_task(self, as_of: str | None = None):  # pragma: no cover - executed by worker
    import asyncio

    from retailsync.ingest.runs import SyncError
    from retailsync.jobs.daily import run_daily_sync
    from retailsync.utils.dates import parse_iso_date

    try:
        results = asyncio.run(run_daily_sync(parse_iso_date(as_of) if as_of else None))
    except SyncError as exc:
        if exc.retriable:
            raise self.retry(exc=exc, countdown=RETRY_DELAY_SECONDS)
        raise
    return {domain: result.as_dict() for domain, result in results.items()}
