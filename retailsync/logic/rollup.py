"""Daily, monthly and yearly sales rollups.

Every tier is recomputed from the tier below and replaced, never incremented,
so re-running a period cannot double count. Order is strict: daily rows are
written before monthly rows are read, monthly before yearly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping, Sequence

from sqlalchemy import bindparam
from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.filters import StoreRef
from retailsync.ingest.models import EventSource
from retailsync.utils.dates import as_date, format_year_month, month_bounds, months_between, years_between

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DailyTotals:
    store: StoreRef
    sale_date: date
    pdv: int = 0
    danfe: int = 0
    exchange: int = 0

    @property
    def total(self) -> int:
        return self.danfe + self.pdv - self.exchange


@dataclass(slots=True)
class RollupSummary:
    daily: int = 0
    monthly: int = 0
    yearly: int = 0
    stores: set[str] = field(default_factory=set)


@dataclass(slots=True)
class RollupMismatch:
    store_id: int
    period: str
    expected: int
    actual: int
    tier: str


def rebuild_daily(
    conn: Connection,
    start: date,
    end: date,
    stores: Sequence[StoreRef],
    origin_category: Mapping[str, EventSource],
) -> list[DailyTotals]:
    """Recompute daily aggregates of ``stores`` for ``start..end`` from raw sale items."""
    if not stores:
        return []
    by_code = {store.code: store for store in stores}
    query = text(
        """
        SELECT store_code, sale_date, origin_code, total_price_cents
        FROM sale_items
        WHERE sale_date BETWEEN :start AND :end AND store_code IN :store_codes
        """
    ).bindparams(bindparam("store_codes", expanding=True))
    rows = conn.execute(query, {"start": start, "end": end, "store_codes": list(by_code)})

    days: dict[tuple[str, date], DailyTotals] = {}
    uncategorized = 0
    for store_code, sale_date, origin_code, total_cents in rows:
        category = origin_category.get(origin_code)
        if category is None:
            uncategorized += 1
            continue
        day = as_date(sale_date)
        totals = days.get((store_code, day))
        if totals is None:
            totals = days[(store_code, day)] = DailyTotals(store=by_code[store_code], sale_date=day)
        if category is EventSource.PDV:
            totals.pdv += total_cents or 0
        elif category is EventSource.DANFE:
            totals.danfe += total_cents or 0
        else:
            totals.exchange += total_cents or 0
    if uncategorized:
        logger.warning("%s sale items with an unknown origin left out of daily totals", uncategorized)

    upsert = text(
        """
        INSERT INTO daily_sales (store_id, store_code, store_name, sale_date, pdv_cents, danfe_cents, exchange_cents, total_cents)
        VALUES (:store_id, :store_code, :store_name, :sale_date, :pdv, :danfe, :exchange, :total)
        ON CONFLICT (store_id, sale_date) DO UPDATE SET
          store_code = EXCLUDED.store_code,
          store_name = EXCLUDED.store_name,
          pdv_cents = EXCLUDED.pdv_cents,
          danfe_cents = EXCLUDED.danfe_cents,
          exchange_cents = EXCLUDED.exchange_cents,
          total_cents = EXCLUDED.total_cents
        """
    )
    ordered = sorted(days.values(), key=lambda d: (d.store.code, d.sale_date))
    _drop_stale_days(conn, start, end, [store.id for store in stores], {(d.store.id, d.sale_date) for d in ordered})
    for totals in ordered:
        conn.execute(
            upsert,
            {
                "store_id": totals.store.id,
                "store_code": totals.store.code,
                "store_name": totals.store.name,
                "sale_date": totals.sale_date,
                "pdv": totals.pdv,
                "danfe": totals.danfe,
                "exchange": totals.exchange,
                "total": totals.total,
            },
        )
    return ordered


def _drop_stale_days(
    conn: Connection, start: date, end: date, store_ids: list[int], kept: set[tuple[int, date]]
) -> int:
    """Delete daily rows of the period that no longer have any categorized sale item."""
    query = text(
        "SELECT store_id, sale_date FROM daily_sales WHERE sale_date BETWEEN :start AND :end AND store_id IN :store_ids"
    ).bindparams(bindparam("store_ids", expanding=True))
    stale = [
        {"store_id": store_id, "sale_date": sale_date}
        for store_id, sale_date in conn.execute(query, {"start": start, "end": end, "store_ids": store_ids})
        if (store_id, as_date(sale_date)) not in kept
    ]
    if stale:
        conn.execute(
            text("DELETE FROM daily_sales WHERE store_id = :store_id AND sale_date = :sale_date"),
            stale,
        )
        logger.info("Removed %s daily rows left without sale items", len(stale))
    return len(stale)


def refresh_monthly(conn: Connection, start: date, end: date) -> int:
    """Replace monthly totals for every month overlapping ``start..end``."""
    first = month_bounds(start)[0]
    last = month_bounds(end)[1]
    rows = conn.execute(
        text(
            """
            SELECT store_id, store_code, store_name, sale_date, total_cents
            FROM daily_sales
            WHERE sale_date BETWEEN :start AND :end
            ORDER BY store_id, sale_date
            """
        ),
        {"start": first, "end": last},
    )
    months: dict[tuple[int, str], dict[str, object]] = {}
    for store_id, store_code, store_name, sale_date, total_cents in rows:
        key = (store_id, format_year_month(as_date(sale_date)))
        entry = months.setdefault(key, {"store_code": store_code, "store_name": store_name, "total": 0})
        entry["store_name"] = store_name
        entry["total"] += total_cents or 0

    upsert = text(
        """
        INSERT INTO monthly_sales (store_id, store_code, store_name, year_month, total_cents)
        VALUES (:store_id, :store_code, :store_name, :year_month, :total)
        ON CONFLICT (store_id, year_month) DO UPDATE SET
          store_code = EXCLUDED.store_code,
          store_name = EXCLUDED.store_name,
          total_cents = EXCLUDED.total_cents
        """
    )
    stale = [
        {"store_id": store_id, "year_month": year_month}
        for store_id, year_month in conn.execute(
            text("SELECT store_id, year_month FROM monthly_sales WHERE year_month BETWEEN :first AND :last"),
            {"first": format_year_month(first), "last": format_year_month(last)},
        )
        if (store_id, year_month) not in months
    ]
    if stale:
        conn.execute(
            text("DELETE FROM monthly_sales WHERE store_id = :store_id AND year_month = :year_month"), stale
        )
    for (store_id, year_month), entry in sorted(months.items()):
        conn.execute(upsert, {"store_id": store_id, "year_month": year_month, **entry})
    logger.debug("Monthly totals refreshed for %s: %s rows", months_between(start, end), len(months))
    return len(months)


def refresh_yearly(conn: Connection, start: date, end: date) -> int:
    """Replace yearly totals for every year overlapping ``start..end``."""
    years = years_between(start, end)
    rows = conn.execute(
        text(
            """
            SELECT store_id, store_code, store_name, year_month, total_cents
            FROM monthly_sales
            WHERE year_month BETWEEN :first AND :last
            ORDER BY store_id, year_month
            """
        ),
        {"first": f"{years[0]:04d}-01", "last": f"{years[-1]:04d}-12"},
    )
    totals: dict[tuple[int, int], dict[str, object]] = {}
    for store_id, store_code, store_name, year_month, total_cents in rows:
        key = (store_id, int(year_month[:4]))
        entry = totals.setdefault(key, {"store_code": store_code, "store_name": store_name, "total": 0})
        entry["store_name"] = store_name
        entry["total"] += total_cents or 0

    upsert = text(
        """
        INSERT INTO yearly_sales (store_id, store_code, store_name, year, total_cents)
        VALUES (:store_id, :store_code, :store_name, :year, :total)
        ON CONFLICT (store_id, year) DO UPDATE SET
          store_code = EXCLUDED.store_code,
          store_name = EXCLUDED.store_name,
          total_cents = EXCLUDED.total_cents
        """
    )
    stale = [
        {"store_id": store_id, "year": int(year)}
        for store_id, year in conn.execute(
            text("SELECT store_id, year FROM yearly_sales WHERE year BETWEEN :first AND :last"),
            {"first": years[0], "last": years[-1]},
        )
        if (store_id, int(year)) not in totals
    ]
    if stale:
        conn.execute(text("DELETE FROM yearly_sales WHERE store_id = :store_id AND year = :year"), stale)
    for (store_id, year), entry in sorted(totals.items()):
        conn.execute(upsert, {"store_id": store_id, "year": year, **entry})
    return len(totals)


def run_rollup(
    conn: Connection,
    start: date,
    end: date,
    stores: Sequence[StoreRef],
    origin_category: Mapping[str, EventSource],
) -> RollupSummary:
    """Daily, then monthly, then yearly, on one connection."""
    daily = rebuild_daily(conn, start, end, stores, origin_category)
    summary = RollupSummary(daily=len(daily), stores={d.store.code for d in daily})
    summary.monthly = refresh_monthly(conn, start, end)
    summary.yearly = refresh_yearly(conn, start, end)
    for mismatch in find_inconsistencies(conn, years_between(start, end)):
        logger.error(
            "Rollup mismatch for store %s %s (%s): expected %s, found %s",
            mismatch.store_id,
            mismatch.period,
            mismatch.tier,
            mismatch.expected,
            mismatch.actual,
        )
    logger.info(
        "Rollup %s..%s: daily=%s monthly=%s yearly=%s", start, end, summary.daily, summary.monthly, summary.yearly
    )
    return summary


def find_inconsistencies(conn: Connection, years: Sequence[int]) -> list[RollupMismatch]:
    """Compare the three tiers for ``years``; mismatches are reported, not fixed."""
    if not years:
        return []
    first, last = min(years), max(years)
    daily_by_month: dict[tuple[int, str], int] = defaultdict(int)
    for store_id, sale_date, total_cents in conn.execute(
        text("SELECT store_id, sale_date, total_cents FROM daily_sales WHERE sale_date BETWEEN :start AND :end"),
        {"start": date(first, 1, 1), "end": date(last, 12, 31)},
    ):
        daily_by_month[(store_id, format_year_month(as_date(sale_date)))] += total_cents or 0

    monthly: dict[tuple[int, str], int] = {}
    for store_id, year_month, total_cents in conn.execute(
        text("SELECT store_id, year_month, total_cents FROM monthly_sales WHERE year_month BETWEEN :first AND :last"),
        {"first": f"{first:04d}-01", "last": f"{last:04d}-12"},
    ):
        monthly[(store_id, year_month)] = total_cents or 0

    yearly: dict[tuple[int, int], int] = {}
    for store_id, year, total_cents in conn.execute(
        text("SELECT store_id, year, total_cents FROM yearly_sales WHERE year BETWEEN :first AND :last"),
        {"first": first, "last": last},
    ):
        yearly[(store_id, int(year))] = total_cents or 0

    mismatches: list[RollupMismatch] = []
    for key in sorted(set(daily_by_month) | set(monthly)):
        expected = daily_by_month.get(key, 0)
        actual = monthly.get(key, 0)
        if expected != actual:
            mismatches.append(RollupMismatch(key[0], key[1], expected, actual, "monthly"))

    monthly_by_year: dict[tuple[int, int], int] = defaultdict(int)
    for (store_id, year_month), total in monthly.items():
        monthly_by_year[(store_id, int(year_month[:4]))] += total
    for key in sorted(set(monthly_by_year) | set(yearly)):
        expected = monthly_by_year.get(key, 0)
        actual = yearly.get(key, 0)
        if expected != actual:
            mismatches.append(RollupMismatch(key[0], str(key[1]), expected, actual, "yearly"))
    return mismatches
