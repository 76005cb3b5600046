"""Natural-key deduplication of incoming legacy batches."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Collection, Generic, Hashable, Iterable, TypeVar

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection

R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


@dataclass(slots=True)
class Classification(Generic[R]):
    new: list[R] = field(default_factory=list)
    existing: list[R] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.new) + len(self.existing)


def classify(records: Iterable[R], key: Callable[[R], K], existing_keys: Collection[K]) -> Classification[R]:
    """Split ``records`` into new and existing by natural key.

    A key repeated within the batch counts as existing from its second
    occurrence on, so every input record lands in exactly one bucket.
    """
    result: Classification[R] = Classification()
    seen: set[K] = set()
    for record in records:
        record_key = key(record)
        if record_key in existing_keys or record_key in seen:
            result.existing.append(record)
        else:
            result.new.append(record)
        seen.add(record_key)
    return result


def load_existing_keys(
    conn: Connection,
    table: str,
    key_columns: tuple[str, ...],
    lookup_column: str,
    lookup_values: Collection[str],
) -> set[tuple]:
    """Fetch, in one query, the natural keys already stored in ``table``.

    ``lookup_column`` narrows the scan (e.g. sale codes of the batch); the
    full composite key is then compared in memory.
    """
    if not lookup_values:
        return set()
    columns = ", ".join(key_columns)
    query = text(f"SELECT {columns} FROM {table} WHERE {lookup_column} IN :values").bindparams(
        bindparam("values", expanding=True)
    )
    result = conn.execute(query, {"values": sorted(set(lookup_values))})
    return {tuple(row) for row in result}
