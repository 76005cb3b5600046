import pytest
from sqlalchemy import text

from conftest import FakeLegacyClient
from retailsync.ingest.collaborators import CollaboratorSync
from retailsync.ingest.stores import StoreSync

EMPLOYEES = [
    {
        "id": "7",
        "jobPositionCode": "03",
        "storeCode": "1",
        "name": "Maria Souza",
        "birthDate": "1990-04-12",
        "commissionPercentage": "2.50",
        "email": "maria@example.com",
        "active": "S",
        "gender": "F",
    },
    {
        "id": 8,
        "jobPositionCode": "01",
        "storeCode": "2",
        "name": "Joao Lima",
        "birthDate": None,
        "commissionPercentage": None,
        "email": None,
        "active": "S",
        "gender": "M",
    },
]


@pytest.mark.asyncio
async def test_collaborators_created_then_skipped_when_unchanged(engine):
    first = await CollaboratorSync(engine, FakeLegacyClient(employees=EMPLOYEES)).sync()
    second = await CollaboratorSync(engine, FakeLegacyClient(employees=EMPLOYEES)).sync()

    assert (first.created, first.updated, first.skipped) == (2, 0, 0)
    assert (second.created, second.updated, second.skipped) == (0, 0, 2)
    assert first.stores_processed == 2
    assert first.period_start is None


@pytest.mark.asyncio
async def test_collaborator_updated_when_tracked_field_changes(engine):
    await CollaboratorSync(engine, FakeLegacyClient(employees=EMPLOYEES)).sync()
    changed = [dict(EMPLOYEES[0], commissionPercentage="3.00", storeCode="2"), EMPLOYEES[1]]

    result = await CollaboratorSync(engine, FakeLegacyClient(employees=changed)).sync()

    assert (result.created, result.updated, result.skipped) == (0, 1, 1)
    with engine.connect() as conn:
        store_code = conn.execute(text("SELECT store_code FROM collaborators WHERE employee_code = '000007'")).scalar()
    assert store_code == "000002"


@pytest.mark.asyncio
async def test_collaborator_without_id_is_skipped(engine):
    batch = EMPLOYEES + [{"name": "Sem Codigo"}]
    result = await CollaboratorSync(engine, FakeLegacyClient(employees=batch)).sync()
    assert (result.created, result.skipped) == (2, 1)


@pytest.mark.asyncio
async def test_store_sync_adds_and_renames(seeded_engine):
    legacy_stores = [
        {"code": "1", "name": "Loja Centro", "city": "Fortaleza"},
        {"code": "2", "name": "Loja Aldeota Shopping", "city": "Fortaleza"},
        {"code": "3", "name": "Loja Iguatemi", "city": "Fortaleza"},
    ]
    result = await StoreSync(seeded_engine, FakeLegacyClient(stores=legacy_stores)).sync()

    assert (result.created, result.updated, result.skipped) == (1, 1, 1)
    with seeded_engine.connect() as conn:
        rows = conn.execute(text("SELECT code, name, active FROM stores ORDER BY code")).all()
    assert [(code, name) for code, name, _ in rows] == [
        ("000001", "Loja Centro"),
        ("000002", "Loja Aldeota Shopping"),
        ("000003", "Loja Iguatemi"),
    ]
    assert all(active for _, _, active in rows)
