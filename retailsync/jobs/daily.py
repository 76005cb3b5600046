"""Nightly sync of the previous business day."""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from dotenv import load_dotenv

from retailsync.db.session import create_engine_from_env
from retailsync.ingest.exchanges import ExchangeSync
from retailsync.ingest.legacy import LegacyClient
from retailsync.ingest.runs import SyncError, SyncRunResult
from retailsync.ingest.sales import SalesSync
from retailsync.utils.dates import yesterday_in_tz

logger = logging.getLogger(__name__)


async def run_daily_sync(as_of: date | None = None) -> dict[str, SyncRunResult]:
    """Sync sales, then exchanges, for ``as_of`` (yesterday by default).

    Both domains are attempted even if the first fails; the first failure is
    re-raised afterwards so the scheduler can retry the day.
    """
    load_dotenv()
    engine = create_engine_from_env()
    target = as_of or yesterday_in_tz()
    client = LegacyClient()
    results: dict[str, SyncRunResult] = {}
    failures: list[SyncError] = []
    try:
        for sync in (SalesSync(engine, client), ExchangeSync(engine, client)):
            try:
                results[sync.domain] = await sync.sync(target, target)
            except SyncError as exc:
                logger.error("Nightly %s sync for %s failed: %s", sync.domain, target, exc)
                failures.append(exc)
    finally:
        await client.close()
    if failures:
        raise failures[0]
    return results


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_daily_sync())
