"""Ingestion helpers."""

from __future__ import annotations

import pathlib
from typing import Any

import yaml
from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

REFERENCE_PATH = pathlib.Path(__file__).with_name("reference.yml")


def load_reference(path: pathlib.Path = REFERENCE_PATH) -> dict[str, list[dict[str, Any]]]:
    """Seed data for the stores, event origin and operation tables."""
    data = yaml.safe_load(path.read_text()) or {}
    return {
        "stores": list(data.get("stores") or []),
        "event_origins": list(data.get("event_origins") or []),
        "operations": list(data.get("operations") or []),
    }


def seed_reference(conn: Connection, reference: dict[str, list[dict[str, Any]]]) -> None:
    """Insert reference rows that are not there yet; existing rows are left alone."""
    for store in reference["stores"]:
        conn.execute(
            text(
                """
                INSERT INTO stores (code, name, city, active)
                VALUES (:code, :name, :city, TRUE)
                ON CONFLICT (code) DO NOTHING
                """
            ),
            {"code": str(store["code"]), "name": store.get("name"), "city": store.get("city")},
        )
    for origin in reference["event_origins"]:
        conn.execute(
            text(
                """
                INSERT INTO event_origins (source_code, event_source)
                VALUES (:source_code, :event_source)
                ON CONFLICT (source_code) DO NOTHING
                """
            ),
            {"source_code": str(origin["source_code"]), "event_source": origin["event_source"]},
        )
    for operation in reference["operations"]:
        conn.execute(
            text(
                """
                INSERT INTO operations (code, description, operation_source)
                VALUES (:code, :description, :operation_source)
                ON CONFLICT (code) DO NOTHING
                """
            ),
            {
                "code": str(operation["code"]),
                "description": operation.get("description"),
                "operation_source": operation["operation_source"],
            },
        )
