"""Reference-data reads resolved at the start of every sync run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from retailsync.ingest.models import EventSource, OperationSource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoreRef:
    id: int
    code: str
    name: str


@dataclass(slots=True)
class SyncFilters:
    stores: list[StoreRef]
    origins: dict[EventSource, list[str]] = field(default_factory=dict)
    operations: dict[OperationSource, list[str]] = field(default_factory=dict)

    @property
    def store_codes(self) -> list[str]:
        return [store.code for store in self.stores]

    def origin_codes(self, *sources: EventSource) -> list[str]:
        return [code for source in sources for code in self.origins.get(source, [])]

    def operation_codes(self, *sources: OperationSource) -> list[str]:
        return [code for source in sources for code in self.operations.get(source, [])]

    def origin_category(self) -> dict[str, EventSource]:
        return {code: source for source, codes in self.origins.items() for code in codes}


def load_filters(conn: Connection) -> SyncFilters:
    """Read stores, origin codes and operation codes from the local tables."""
    stores = [
        StoreRef(id=row.id, code=row.code, name=row.name or row.code)
        for row in conn.execute(
            text("SELECT id, code, name FROM stores WHERE active = TRUE AND code IS NOT NULL ORDER BY code")
        )
        if row.code.strip()
    ]
    origins: dict[EventSource, list[str]] = {source: [] for source in EventSource}
    for source_code, event_source in conn.execute(
        text("SELECT source_code, event_source FROM event_origins ORDER BY source_code")
    ):
        try:
            origins[EventSource(event_source)].append(source_code)
        except ValueError:
            logger.warning("Ignoring origin %s with unknown event source %s", source_code, event_source)
    operations: dict[OperationSource, list[str]] = {source: [] for source in OperationSource}
    for code, operation_source in conn.execute(
        text("SELECT code, operation_source FROM operations ORDER BY code")
    ):
        try:
            operations[OperationSource(operation_source)].append(code)
        except ValueError:
            logger.warning("Ignoring operation %s with unknown source %s", code, operation_source)

    if not stores:
        logger.warning("No active stores found in the local database")
    logger.debug(
        "Filters loaded: %s stores, origins %s, operations %s",
        len(stores),
        {source.value: len(codes) for source, codes in origins.items()},
        {source.value: len(codes) for source, codes in operations.items()},
    )
    return SyncFilters(stores=stores, origins=origins, operations=operations)
