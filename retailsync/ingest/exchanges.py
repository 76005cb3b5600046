"""Exchange synchronization."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.filters import SyncFilters
from retailsync.ingest.models import (
    EventSource,
    ExchangeRecord,
    MalformedRecordError,
    OperationSource,
    exchange_from_payload,
    record_label,
)
from retailsync.ingest.runs import SyncRun, SyncRunResult
from retailsync.logic.dedup import classify, load_existing_keys
from retailsync.logic.observation import parse_observation
from retailsync.logic.rollup import run_rollup

logger = logging.getLogger(__name__)


class ExchangeSync(SyncRun):
    """Mirror legacy exchange documents.

    Exchanges are upserted: legacy notes get amended after the fact, so an
    exchange already stored has every non-key field overwritten, including
    the resale links parsed from its observation.
    """

    domain = "exchanges"

    async def _fetch(self, filters: SyncFilters, start: date, end: date) -> list[dict[str, Any]]:
        return await self.client.fetch_exchanges(
            start,
            end,
            filters.store_codes,
            filters.origin_codes(EventSource.EXCHANGE),
            filters.operation_codes(OperationSource.EXCHANGE),
        )

    def _persist(self, filters: SyncFilters, batch: list[dict[str, Any]], start: date, end: date) -> SyncRunResult:
        result = SyncRunResult(period_start=start, period_end=end)
        records: list[ExchangeRecord] = []
        for payload in batch:
            try:
                record = exchange_from_payload(payload)
            except MalformedRecordError as exc:
                result.skipped += 1
                logger.warning("Skipping malformed exchange %s: %s", record_label(payload, "documentCode"), exc)
                continue
            links = parse_observation(record.observation)
            record.new_sale_number = links.new_sale_number
            record.new_sale_nfe_key = links.new_sale_nfe_key
            records.append(record)

        with self.engine.begin() as conn:
            existing = load_existing_keys(
                conn,
                "exchanges",
                ("document_code", "store_code"),
                "document_code",
                {record.document_code for record in records},
            )
            classified = classify(records, lambda record: record.natural_key, existing)
            for record in classified.new:
                if _insert_exchange(conn, record):
                    result.created += 1
                else:
                    result.skipped += 1
                    logger.debug("Exchange %s inserted concurrently; skipped", record.natural_key)
            for record in classified.existing:
                _update_exchange(conn, record)
                result.updated += 1
                logger.debug("Exchange %s updated", record.natural_key)

            run_rollup(conn, start, end, filters.stores, filters.origin_category())

        result.stores_processed = len({record.store_code for record in records})
        return result


def _params(record: ExchangeRecord) -> dict[str, Any]:
    return {
        "document_code": record.document_code,
        "store_code": record.store_code,
        "operation_code": record.operation_code,
        "origin_code": record.origin_code,
        "employee_code": record.employee_code,
        "document_number": record.document_number,
        "nfe_key": record.nfe_key,
        "issue_date": record.issue_date,
        "observation": record.observation,
        "new_sale_number": record.new_sale_number,
        "new_sale_nfe_key": record.new_sale_nfe_key,
    }


def _insert_exchange(conn: Connection, record: ExchangeRecord) -> bool:
    row = conn.execute(
        text(
            """
            INSERT INTO exchanges (
              document_code, store_code, operation_code, origin_code, employee_code, document_number,
              nfe_key, issue_date, observation, new_sale_number, new_sale_nfe_key
            )
            VALUES (
              :document_code, :store_code, :operation_code, :origin_code, :employee_code, :document_number,
              :nfe_key, :issue_date, :observation, :new_sale_number, :new_sale_nfe_key
            )
            ON CONFLICT (document_code, store_code) DO NOTHING
            """
        ),
        _params(record),
    )
    return row.rowcount == 1


def _update_exchange(conn: Connection, record: ExchangeRecord) -> None:
    conn.execute(
        text(
            """
            UPDATE exchanges SET
              operation_code = :operation_code,
              origin_code = :origin_code,
              employee_code = :employee_code,
              document_number = :document_number,
              nfe_key = :nfe_key,
              issue_date = :issue_date,
              observation = :observation,
              new_sale_number = :new_sale_number,
              new_sale_nfe_key = :new_sale_nfe_key,
              updated_at = CURRENT_TIMESTAMP
            WHERE document_code = :document_code AND store_code = :store_code
            """
        ),
        _params(record),
    )
