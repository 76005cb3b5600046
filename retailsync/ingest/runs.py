"""Sync run plumbing shared by every domain."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from retailsync.ingest.filters import SyncFilters, load_filters
from retailsync.ingest.legacy import LegacyClient, LegacySourceError
from retailsync.utils.dates import now_in_tz

logger = logging.getLogger(__name__)


class SyncError(RuntimeError):
    """A sync run failed; nothing from its transaction was committed."""

    def __init__(self, message: str, *, retriable: bool) -> None:
        super().__init__(message)
        self.retriable = retriable


@dataclass(slots=True)
class SyncRunResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    processed_at: datetime = field(default_factory=lambda: now_in_tz().naive())
    period_start: date | None = None
    period_end: date | None = None
    stores_processed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncRun:
    """One fetch, classify, persist, roll up, report cycle.

    Subclasses implement ``_fetch`` (awaits the gateway) and ``_persist``
    (runs in a worker thread inside a single transaction). The gateway call
    happens before the transaction is opened, so a transport failure leaves
    the database untouched.
    """

    domain = "records"
    requires_period = True

    def __init__(self, engine: Engine, client: LegacyClient) -> None:
        self.engine = engine
        self.client = client

    async def sync(self, start: date | None = None, end: date | None = None) -> SyncRunResult:
        if self.requires_period and (start is None or end is None):
            raise ValueError(f"{self.domain} sync needs a start and an end date")
        if start and end and start > end:
            raise ValueError("start date must not be after end date")
        logger.info("Starting %s sync for %s..%s", self.domain, start, end)
        loop = asyncio.get_running_loop()
        try:
            filters = await loop.run_in_executor(None, self._prepare_filters)
            batch = await self._fetch(filters, start, end)
            logger.info("Received %s %s from the legacy API", len(batch), self.domain)
            result = await loop.run_in_executor(None, self._persist, filters, batch, start, end)
        except LegacySourceError as exc:
            logger.exception("Legacy API failure during %s sync", self.domain)
            raise SyncError(f"{self.domain} sync failed: {exc}", retriable=exc.retriable) from exc
        except SQLAlchemyError as exc:
            logger.exception("Database failure during %s sync", self.domain)
            raise SyncError(f"{self.domain} sync failed: {exc}", retriable=True) from exc
        logger.info(
            "Finished %s sync: created=%s updated=%s skipped=%s stores=%s",
            self.domain,
            result.created,
            result.updated,
            result.skipped,
            result.stores_processed,
        )
        return result

    def _prepare_filters(self) -> SyncFilters:
        with self.engine.connect() as conn:
            return load_filters(conn)

    async def _fetch(self, filters: SyncFilters, start: date | None, end: date | None) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _persist(
        self, filters: SyncFilters, batch: list[dict[str, Any]], start: date | None, end: date | None
    ) -> SyncRunResult:
        raise NotImplementedError
