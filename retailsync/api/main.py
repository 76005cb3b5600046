"""FastAPI application exposing sync triggers and rollup reports."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.engine import Engine

from retailsync.db.session import create_engine_from_env
from retailsync.ingest.collaborators import CollaboratorSync
from retailsync.ingest.exchanges import ExchangeSync
from retailsync.ingest.legacy import LegacyClient
from retailsync.ingest.models import CODE_WIDTH, normalize_code
from retailsync.ingest.runs import SyncError, SyncRun
from retailsync.ingest.sales import SalesSync
from retailsync.ingest.stores import StoreSync
from retailsync.logic.rollup import refresh_monthly, refresh_yearly
from retailsync.utils.dates import format_year_month, today_in_tz

logger = logging.getLogger(__name__)

app = FastAPI(title="Retailsync API")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PeriodRequest(CamelModel):
    start_date: date
    end_date: date


class SyncRunResponse(CamelModel):
    created: int
    updated: int
    skipped: int
    processed_at: datetime
    period_start: date | None = None
    period_end: date | None = None
    stores_processed: int


class RollupResponse(CamelModel):
    period_start: date
    period_end: date
    rows: int


class ReportResponse(BaseModel):
    rows: list[dict[str, Any]]


class DashboardSummary(CamelModel):
    reference_date: date
    sales_today: int
    sales_month: int
    sales_year: int
    active_stores: int


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine_from_env()


async def get_legacy_client() -> AsyncIterator[LegacyClient]:
    client = LegacyClient()
    try:
        yield client
    finally:
        await client.close()


def _check_period(start: date, end: date) -> None:
    if start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")


async def _run(sync: SyncRun, start: date | None = None, end: date | None = None) -> SyncRunResponse:
    try:
        result = await sync.sync(start, end)
    except SyncError as exc:
        logger.error("%s sync failed (retriable=%s): %s", sync.domain, exc.retriable, exc)
        raise HTTPException(status_code=503 if exc.retriable else 502, detail="Synchronization failed") from exc
    return SyncRunResponse(**result.as_dict())


@app.post("/v1/sales/sync", response_model=SyncRunResponse)
async def sync_sales(
    payload: PeriodRequest,
    engine: Engine = Depends(get_engine),
    client: LegacyClient = Depends(get_legacy_client),
) -> SyncRunResponse:
    _check_period(payload.start_date, payload.end_date)
    return await _run(SalesSync(engine, client), payload.start_date, payload.end_date)


@app.post("/v1/exchanges/sync", response_model=SyncRunResponse)
async def sync_exchanges(
    payload: PeriodRequest,
    engine: Engine = Depends(get_engine),
    client: LegacyClient = Depends(get_legacy_client),
) -> SyncRunResponse:
    _check_period(payload.start_date, payload.end_date)
    return await _run(ExchangeSync(engine, client), payload.start_date, payload.end_date)


@app.post("/v1/collaborators/sync", response_model=SyncRunResponse)
async def sync_collaborators(
    engine: Engine = Depends(get_engine),
    client: LegacyClient = Depends(get_legacy_client),
) -> SyncRunResponse:
    return await _run(CollaboratorSync(engine, client))


@app.post("/v1/stores/sync", response_model=SyncRunResponse)
async def sync_stores(
    engine: Engine = Depends(get_engine),
    client: LegacyClient = Depends(get_legacy_client),
) -> SyncRunResponse:
    return await _run(StoreSync(engine, client))


@app.post("/sync/monthly-sales", response_model=RollupResponse)
async def rebuild_monthly_sales(payload: PeriodRequest, engine: Engine = Depends(get_engine)) -> RollupResponse:
    _check_period(payload.start_date, payload.end_date)
    with engine.begin() as conn:
        rows = refresh_monthly(conn, payload.start_date, payload.end_date)
    return RollupResponse(period_start=payload.start_date, period_end=payload.end_date, rows=rows)


@app.post("/sync/yearly-sales", response_model=RollupResponse)
async def rebuild_yearly_sales(payload: PeriodRequest, engine: Engine = Depends(get_engine)) -> RollupResponse:
    _check_period(payload.start_date, payload.end_date)
    with engine.begin() as conn:
        rows = refresh_yearly(conn, payload.start_date, payload.end_date)
    return RollupResponse(period_start=payload.start_date, period_end=payload.end_date, rows=rows)


@app.get("/reports/daily", response_model=ReportResponse)
async def daily_report(
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> ReportResponse:
    _check_period(start, end)
    query = """
        SELECT store_code, store_name, sale_date, pdv_cents, danfe_cents, exchange_cents, total_cents
        FROM daily_sales
        WHERE sale_date BETWEEN :start AND :end
    """
    params: dict[str, Any] = {"start": start, "end": end}
    return ReportResponse(rows=_report(engine, query, params, store_code, "store_code, sale_date"))


@app.get("/reports/monthly", response_model=ReportResponse)
async def monthly_report(
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> ReportResponse:
    _check_period(start, end)
    query = """
        SELECT store_code, store_name, year_month, total_cents
        FROM monthly_sales
        WHERE year_month BETWEEN :start AND :end
    """
    params: dict[str, Any] = {"start": format_year_month(start), "end": format_year_month(end)}
    return ReportResponse(rows=_report(engine, query, params, store_code, "store_code, year_month"))


@app.get("/reports/yearly", response_model=ReportResponse)
async def yearly_report(
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> ReportResponse:
    _check_period(start, end)
    query = """
        SELECT store_code, store_name, year, total_cents
        FROM yearly_sales
        WHERE year BETWEEN :start AND :end
    """
    params: dict[str, Any] = {"start": start.year, "end": end.year}
    return ReportResponse(rows=_report(engine, query, params, store_code, "store_code, year"))


@app.get("/v1/exchanges", response_model=ReportResponse)
async def list_exchanges(
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> ReportResponse:
    _check_period(start, end)
    query = """
        SELECT document_code, store_code, operation_code, origin_code, employee_code, document_number,
               nfe_key, issue_date, observation, new_sale_number, new_sale_nfe_key
        FROM exchanges
        WHERE issue_date >= :start AND issue_date < :end
    """
    params: dict[str, Any] = {
        "start": datetime.combine(start, datetime.min.time()),
        "end": datetime.combine(end + timedelta(days=1), datetime.min.time()),
    }
    return ReportResponse(rows=_report(engine, query, params, store_code, "issue_date, document_code"))


@app.get("/v1/collaborators", response_model=ReportResponse)
async def list_collaborators(
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> ReportResponse:
    query = """
        SELECT employee_code, job_position_code, store_code, name, birth_date,
               commission_percentage, email, active, gender
        FROM collaborators
        WHERE 1=1
    """
    return ReportResponse(rows=_report(engine, query, {}, store_code, "employee_code"))


@app.get("/dashboard/summary", response_model=DashboardSummary)
async def dashboard_summary(
    reference_date: date | None = Query(None, alias="date"),
    store_code: str | None = Query(None, alias="storeCode"),
    engine: Engine = Depends(get_engine),
) -> DashboardSummary:
    """Sales of the day, its month and its year, read from the rollup tables."""
    day = reference_date or today_in_tz()
    store_filter = ""
    params: dict[str, Any] = {"day": day, "year_month": format_year_month(day), "year": day.year}
    if store_code:
        store_filter = " AND store_code = :store_code"
        params["store_code"] = normalize_code(store_code, width=CODE_WIDTH)
    with engine.connect() as conn:
        today = conn.execute(
            text("SELECT COALESCE(SUM(total_cents), 0) FROM daily_sales WHERE sale_date = :day" + store_filter), params
        ).scalar()
        month = conn.execute(
            text("SELECT COALESCE(SUM(total_cents), 0) FROM monthly_sales WHERE year_month = :year_month" + store_filter),
            params,
        ).scalar()
        year = conn.execute(
            text("SELECT COALESCE(SUM(total_cents), 0) FROM yearly_sales WHERE year = :year" + store_filter), params
        ).scalar()
        active = conn.execute(text("SELECT COUNT(*) FROM stores WHERE active = TRUE")).scalar()
    return DashboardSummary(
        reference_date=day,
        sales_today=today or 0,
        sales_month=month or 0,
        sales_year=year or 0,
        active_stores=active or 0,
    )


def _report(engine: Engine, query: str, params: dict[str, Any], store_code: str | None, order_by: str) -> list[dict[str, Any]]:
    if store_code:
        query += " AND store_code = :store_code"
        params["store_code"] = normalize_code(store_code, width=CODE_WIDTH)
    query += f" ORDER BY {order_by} LIMIT 1000"
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(text(query), params).mappings()]
