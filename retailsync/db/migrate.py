"""Apply the retailsync schema."""

from __future__ import annotations

import logging
import pathlib
import sys
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from retailsync.db.session import create_engine_from_env

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).with_name("schema.sql")


def run_migrations(engine: Engine, schema: pathlib.Path = SCHEMA_PATH) -> int:
    """Execute every statement of ``schema`` in one transaction.

    The schema only uses ``CREATE ... IF NOT EXISTS`` so it is safe to re-run.
    """
    statements = list(split_statements(schema.read_text()))
    with engine.begin() as conn:
        for stmt in statements:
            conn.execute(text(stmt))
    logger.info("Applied %s schema statements", len(statements))
    return len(statements)


def split_statements(sql: str) -> Iterator[str]:
    buffer: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buffer.append(line)
        if stripped.endswith(";"):
            yield "\n".join(buffer)
            buffer.clear()
    if buffer:
        yield "\n".join(buffer)


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    engine = create_engine_from_env()
    try:
        run_migrations(engine)
    except SQLAlchemyError as exc:
        logger.error("Migration failed: %s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()
