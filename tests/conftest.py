from datetime import date

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    text,
)
from sqlalchemy.pool import StaticPool

from retailsync.ingest import load_reference, seed_reference

metadata = MetaData()

stores = Table(
    "stores",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", Text, nullable=False, unique=True),
    Column("name", Text),
    Column("city", Text),
    Column("active", Boolean, nullable=False, server_default=text("1")),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

event_origins = Table(
    "event_origins",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("source_code", Text, nullable=False, unique=True),
    Column("event_source", Text, nullable=False),
)

operations = Table(
    "operations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", Text, nullable=False, unique=True),
    Column("description", Text),
    Column("operation_source", Text, nullable=False),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("product_ref_code", Text, nullable=False, unique=True),
    Column("product_code", Text),
    Column("section", Text),
    Column("product_group", Text),
    Column("subgroup", Text),
    Column("brand", Text),
    Column("description", Text),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

sale_items = Table(
    "sale_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sale_code", Text, nullable=False),
    Column("item_sequence", Integer, nullable=False),
    Column("product_ref_code", Text, nullable=False),
    Column("store_code", Text, nullable=False),
    Column("employee_code", Text),
    Column("origin_code", Text),
    Column("operation_code", Text),
    Column("sale_date", Date, nullable=False),
    Column("ncm", Text),
    Column("quantity", Integer),
    Column("unit_price_cents", Integer),
    Column("total_price_cents", Integer),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    UniqueConstraint("sale_code", "product_ref_code", "item_sequence"),
)

exchanges = Table(
    "exchanges",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("document_code", Text, nullable=False),
    Column("store_code", Text, nullable=False),
    Column("operation_code", Text),
    Column("origin_code", Text),
    Column("employee_code", Text),
    Column("document_number", Text),
    Column("nfe_key", Text),
    Column("issue_date", DateTime),
    Column("observation", Text),
    Column("new_sale_number", Text),
    Column("new_sale_nfe_key", Text),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    Column("updated_at", DateTime, server_default=func.current_timestamp()),
    UniqueConstraint("document_code", "store_code"),
)

collaborators = Table(
    "collaborators",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("employee_code", Text, nullable=False, unique=True),
    Column("job_position_code", Text),
    Column("store_code", Text),
    Column("name", Text),
    Column("birth_date", Date),
    Column("commission_percentage", Numeric(5, 2)),
    Column("email", Text),
    Column("active", Text),
    Column("gender", Text),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    Column("updated_at", DateTime, server_default=func.current_timestamp()),
)

daily_sales = Table(
    "daily_sales",
    metadata,
    Column("store_id", Integer, ForeignKey("stores.id"), primary_key=True),
    Column("store_code", Text, nullable=False),
    Column("store_name", Text),
    Column("sale_date", Date, primary_key=True),
    Column("pdv_cents", Integer),
    Column("danfe_cents", Integer),
    Column("exchange_cents", Integer),
    Column("total_cents", Integer),
)

monthly_sales = Table(
    "monthly_sales",
    metadata,
    Column("store_id", Integer, ForeignKey("stores.id"), primary_key=True),
    Column("store_code", Text, nullable=False),
    Column("store_name", Text),
    Column("year_month", String(7), primary_key=True),
    Column("total_cents", Integer),
)

yearly_sales = Table(
    "yearly_sales",
    metadata,
    Column("store_id", Integer, ForeignKey("stores.id"), primary_key=True),
    Column("store_code", Text, nullable=False),
    Column("store_name", Text),
    Column("year", Integer, primary_key=True),
    Column("total_cents", Integer),
)


class FakeLegacyClient:
    """Stands in for ``LegacyClient``; records every call it receives."""

    def __init__(self, sale_items=None, exchanges=None, employees=None, stores=None, error=None):
        self.sale_items = sale_items or []
        self.exchanges = exchanges or []
        self.employees = employees or []
        self.stores = stores or []
        self.error = error
        self.calls = []

    async def fetch_sale_items(self, start, end, store_codes, origin_codes, operation_codes):
        return self._answer("sale_items", self.sale_items, start, end, store_codes, origin_codes, operation_codes)

    async def fetch_exchanges(self, start, end, store_codes, origin_codes, operation_codes):
        return self._answer("exchanges", self.exchanges, start, end, store_codes, origin_codes, operation_codes)

    async def fetch_active_employees(self):
        return self._answer("employees", self.employees)

    async def fetch_stores(self):
        return self._answer("stores", self.stores)

    async def close(self):
        return None

    def _answer(self, name, records, *args):
        self.calls.append((name, *args))
        if self.error is not None:
            raise self.error
        return [dict(record) if isinstance(record, dict) else record for record in records]


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seeded_engine(engine):
    with engine.begin() as conn:
        seed_reference(conn, load_reference())
    return engine


@pytest.fixture()
def store_ids(seeded_engine):
    with seeded_engine.connect() as conn:
        return {code: store_id for store_id, code in conn.execute(text("SELECT id, code FROM stores"))}


def sale_payload(sale_code, origin_code, total, sale_date="2025-01-05T10:00:00-03:00", **overrides):
    payload = {
        "saleCode": sale_code,
        "itemSequence": 1,
        "storeCode": "1",
        "employeeCode": "42",
        "productRefCode": f"REF-{sale_code}",
        "originCode": origin_code,
        "operationCode": "000999",
        "saleDate": sale_date,
        "quantity": 1,
        "unitPrice": total,
        "totalPrice": total,
        "ncm": "61091000",
        "productCode": f"P-{sale_code}",
        "section": "VESTUARIO",
        "group": "CAMISETAS",
        "subgroup": "BASICAS",
        "brand": "ACME",
        "productDescription": "Camiseta basica",
    }
    payload.update(overrides)
    return payload


JANUARY = (date(2025, 1, 1), date(2025, 1, 31))
