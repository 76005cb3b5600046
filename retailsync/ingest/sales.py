"""Sales synchronization: sale items, product master and rollups."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.filters import SyncFilters
from retailsync.ingest.models import (
    EventSource,
    MalformedRecordError,
    OperationSource,
    ProductMaster,
    SaleItem,
    product_from_payload,
    record_label,
    sale_item_from_payload,
)
from retailsync.ingest.runs import SyncRun, SyncRunResult
from retailsync.logic.dedup import classify, load_existing_keys
from retailsync.logic.rollup import run_rollup

logger = logging.getLogger(__name__)

SALE_ORIGINS = (EventSource.PDV, EventSource.DANFE, EventSource.EXCHANGE)
SALE_OPERATIONS = (OperationSource.SELL, OperationSource.EXCHANGE)


class SalesSync(SyncRun):
    """Mirror legacy sale items for a period and refresh the sales rollups.

    Sale items and products are insert-only: a natural key already stored is
    skipped, never updated.
    """

    domain = "sale items"

    async def _fetch(self, filters: SyncFilters, start: date, end: date) -> list[dict[str, Any]]:
        return await self.client.fetch_sale_items(
            start,
            end,
            filters.store_codes,
            filters.origin_codes(*SALE_ORIGINS),
            filters.operation_codes(*SALE_OPERATIONS),
        )

    def _persist(self, filters: SyncFilters, batch: list[dict[str, Any]], start: date, end: date) -> SyncRunResult:
        result = SyncRunResult(period_start=start, period_end=end)
        items: list[SaleItem] = []
        products: dict[str, ProductMaster] = {}
        for payload in batch:
            try:
                item = sale_item_from_payload(payload)
                product = product_from_payload(payload)
            except MalformedRecordError as exc:
                result.skipped += 1
                logger.warning("Skipping malformed sale item %s: %s", record_label(payload, "saleCode"), exc)
                continue
            items.append(item)
            products.setdefault(product.product_ref_code, product)

        with self.engine.begin() as conn:
            inserted_products = self._insert_products(conn, list(products.values()))
            logger.info("Products: %s new, %s already known", inserted_products, len(products) - inserted_products)

            existing = load_existing_keys(
                conn,
                "sale_items",
                ("sale_code", "product_ref_code", "item_sequence"),
                "sale_code",
                {item.sale_code for item in items},
            )
            classified = classify(items, lambda item: item.natural_key, existing)
            result.skipped += len(classified.existing)
            for item in classified.new:
                if self._insert_sale_item(conn, item):
                    result.created += 1
                else:
                    result.skipped += 1
                    logger.debug("Sale item %s inserted concurrently; skipped", item.natural_key)

            run_rollup(conn, start, end, filters.stores, filters.origin_category())

        result.stores_processed = len({item.store_code for item in items})
        return result

    def _insert_products(self, conn: Connection, products: list[ProductMaster]) -> int:
        if not products:
            return 0
        existing = load_existing_keys(
            conn, "products", ("product_ref_code",), "product_ref_code", [p.product_ref_code for p in products]
        )
        classified = classify(products, lambda p: (p.product_ref_code,), existing)
        inserted = 0
        for product in classified.new:
            row = conn.execute(
                text(
                    """
                    INSERT INTO products (product_ref_code, product_code, section, product_group, subgroup, brand, description)
                    VALUES (:product_ref_code, :product_code, :section, :group, :subgroup, :brand, :description)
                    ON CONFLICT (product_ref_code) DO NOTHING
                    """
                ),
                {
                    "product_ref_code": product.product_ref_code,
                    "product_code": product.product_code,
                    "section": product.section,
                    "group": product.group,
                    "subgroup": product.subgroup,
                    "brand": product.brand,
                    "description": product.description,
                },
            )
            inserted += row.rowcount
        return inserted

    def _insert_sale_item(self, conn: Connection, item: SaleItem) -> bool:
        row = conn.execute(
            text(
                """
                INSERT INTO sale_items (
                  sale_code, item_sequence, product_ref_code, store_code, employee_code,
                  origin_code, operation_code, sale_date, ncm, quantity, unit_price_cents, total_price_cents
                )
                VALUES (
                  :sale_code, :item_sequence, :product_ref_code, :store_code, :employee_code,
                  :origin_code, :operation_code, :sale_date, :ncm, :quantity, :unit_price_cents, :total_price_cents
                )
                ON CONFLICT (sale_code, product_ref_code, item_sequence) DO NOTHING
                """
            ),
            {
                "sale_code": item.sale_code,
                "item_sequence": item.item_sequence,
                "product_ref_code": item.product_ref_code,
                "store_code": item.store_code,
                "employee_code": item.employee_code,
                "origin_code": item.origin_code,
                "operation_code": item.operation_code,
                "sale_date": item.sale_date,
                "ncm": item.ncm,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "total_price_cents": item.total_price_cents,
            },
        )
        return row.rowcount == 1
