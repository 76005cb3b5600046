"""Collaborator (employee) synchronization."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import bindparam
from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.filters import SyncFilters
from retailsync.ingest.models import Collaborator, MalformedRecordError, collaborator_from_payload, record_label
from retailsync.ingest.runs import SyncRun, SyncRunResult
from retailsync.logic.dedup import classify
from retailsync.utils.dates import as_date

logger = logging.getLogger(__name__)

TRACKED_FIELDS = (
    "job_position_code",
    "store_code",
    "name",
    "birth_date",
    "commission_percentage",
    "email",
    "active",
    "gender",
)


class CollaboratorSync(SyncRun):
    """Mirror the legacy list of active employees.

    Keyed by employee code. An existing collaborator is rewritten only when
    one of its tracked fields changed; an unchanged one counts as skipped.
    """

    domain = "collaborators"
    requires_period = False

    def _prepare_filters(self) -> SyncFilters:
        return SyncFilters(stores=[])

    async def _fetch(self, filters: SyncFilters, start: date | None, end: date | None) -> list[dict[str, Any]]:
        return await self.client.fetch_active_employees()

    def _persist(
        self, filters: SyncFilters, batch: list[dict[str, Any]], start: date | None, end: date | None
    ) -> SyncRunResult:
        result = SyncRunResult(period_start=start, period_end=end)
        records: list[Collaborator] = []
        for payload in batch:
            try:
                records.append(collaborator_from_payload(payload))
            except MalformedRecordError as exc:
                result.skipped += 1
                logger.warning("Skipping malformed collaborator %s: %s", record_label(payload, "id"), exc)

        with self.engine.begin() as conn:
            current = _load_current(conn, [record.employee_code for record in records])
            classified = classify(records, lambda record: record.employee_code, current.keys())
            for record in classified.new:
                if _insert(conn, record):
                    result.created += 1
                    current[record.employee_code] = _tracked(record)
                else:
                    result.skipped += 1
            for record in classified.existing:
                wanted = _tracked(record)
                if current.get(record.employee_code) == wanted:
                    result.skipped += 1
                    continue
                _update(conn, record)
                current[record.employee_code] = wanted
                result.updated += 1
                logger.debug("Collaborator %s updated", record.employee_code)

        result.stores_processed = len({record.store_code for record in records if record.store_code})
        return result


def _tracked(record: Collaborator) -> dict[str, Any]:
    values = asdict(record)
    return {name: values[name] for name in TRACKED_FIELDS}


def _load_current(conn: Connection, codes: list[str]) -> dict[str, dict[str, Any]]:
    if not codes:
        return {}
    query = text(
        f"SELECT employee_code, {', '.join(TRACKED_FIELDS)} FROM collaborators WHERE employee_code IN :codes"
    ).bindparams(bindparam("codes", expanding=True))
    current: dict[str, dict[str, Any]] = {}
    for row in conn.execute(query, {"codes": sorted(set(codes))}).mappings():
        values = {name: row[name] for name in TRACKED_FIELDS}
        if values["birth_date"] is not None:
            values["birth_date"] = as_date(values["birth_date"])
        if values["commission_percentage"] is not None:
            values["commission_percentage"] = Decimal(str(values["commission_percentage"]))
        current[row["employee_code"]] = values
    return current


def _params(record: Collaborator) -> dict[str, Any]:
    params = asdict(record)
    if record.commission_percentage is not None:
        params["commission_percentage"] = str(record.commission_percentage)
    return params


def _insert(conn: Connection, record: Collaborator) -> bool:
    row = conn.execute(
        text(
            """
            INSERT INTO collaborators (
              employee_code, job_position_code, store_code, name, birth_date,
              commission_percentage, email, active, gender
            )
            VALUES (
              :employee_code, :job_position_code, :store_code, :name, :birth_date,
              :commission_percentage, :email, :active, :gender
            )
            ON CONFLICT (employee_code) DO NOTHING
            """
        ),
        _params(record),
    )
    return row.rowcount == 1


def _update(conn: Connection, record: Collaborator) -> None:
    conn.execute(
        text(
            """
            UPDATE collaborators SET
              job_position_code = :job_position_code,
              store_code = :store_code,
              name = :name,
              birth_date = :birth_date,
              commission_percentage = :commission_percentage,
              email = :email,
              active = :active,
              gender = :gender,
              updated_at = CURRENT_TIMESTAMP
            WHERE employee_code = :employee_code
            """
        ),
        _params(record),
    )
