"""Store synchronization."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import bindparam
from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.filters import SyncFilters
from retailsync.ingest.models import MalformedRecordError, StoreRecord, store_from_payload
from retailsync.ingest.runs import SyncRun, SyncRunResult
from retailsync.logic.dedup import classify

logger = logging.getLogger(__name__)


class StoreSync(SyncRun):
    domain = "stores"
    requires_period = False

    def _prepare_filters(self) -> SyncFilters:
        return SyncFilters(stores=[])

    async def _fetch(self, filters: SyncFilters, start: date | None, end: date | None) -> list[dict[str, Any]]:
        return await self.client.fetch_stores()

    def _persist(
        self, filters: SyncFilters, batch: list[dict[str, Any]], start: date | None, end: date | None
    ) -> SyncRunResult:
        result = SyncRunResult(period_start=start, period_end=end)
        records: list[StoreRecord] = []
        for payload in batch:
            try:
                records.append(store_from_payload(payload))
            except MalformedRecordError as exc:
                result.skipped += 1
                logger.warning("Skipping malformed store %s: %s", payload, exc)

        with self.engine.begin() as conn:
            current = _load_current(conn, [record.code for record in records])
            classified = classify(records, lambda record: record.code, current.keys())
            for record in classified.new:
                row = conn.execute(
                    text(
                        """
                        INSERT INTO stores (code, name, city, active)
                        VALUES (:code, :name, :city, TRUE)
                        ON CONFLICT (code) DO NOTHING
                        """
                    ),
                    {"code": record.code, "name": record.name, "city": record.city},
                )
                if row.rowcount == 1:
                    result.created += 1
                    current[record.code] = (record.name, record.city)
                else:
                    result.skipped += 1
            for record in classified.existing:
                if current.get(record.code) == (record.name, record.city):
                    result.skipped += 1
                    continue
                conn.execute(
                    text("UPDATE stores SET name = :name, city = :city WHERE code = :code"),
                    {"code": record.code, "name": record.name, "city": record.city},
                )
                current[record.code] = (record.name, record.city)
                result.updated += 1

        result.stores_processed = len({record.code for record in records})
        return result


def _load_current(conn: Connection, codes: list[str]) -> dict[str, tuple[str | None, str | None]]:
    if not codes:
        return {}
    query = text("SELECT code, name, city FROM stores WHERE code IN :codes").bindparams(
        bindparam("codes", expanding=True)
    )
    return {code: (name, city) for code, name, city in conn.execute(query, {"codes": sorted(set(codes))})}
