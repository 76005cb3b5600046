"""Seed database with stores, event origins and operations."""

from __future__ import annotations

from dotenv import load_dotenv

from retailsync.db.session import create_engine_from_env
from retailsync.ingest import load_reference, seed_reference


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    reference = load_reference()
    with engine.begin() as conn:
        seed_reference(conn, reference)
    print(
        f"Seed complete: {len(reference['stores'])} stores, "
        f"{len(reference['event_origins'])} origins, {len(reference['operations'])} operations"
    )


if __name__ == "__main__":
    main()
