from datetime import date
from decimal import Decimal

import pytest

from retailsync.ingest.models import (
    MalformedRecordError,
    collaborator_from_payload,
    normalize_code,
    sale_item_from_payload,
    store_from_payload,
    to_cents,
    to_int,
)
from retailsync.logic.dedup import classify


@pytest.mark.parametrize(
    "value, width, expected",
    [
        ("1", 6, "000001"),
        (1.0, 6, "000001"),
        (" 000001 ", 6, "000001"),
        ("54.0", 0, "54"),
        ("0054", 0, "0054"),
        ("ABC-1 ", 6, "ABC-1"),
        ("   ", 6, None),
        (None, 6, None),
    ],
)
def test_normalize_code(value, width, expected):
    assert normalize_code(value, width=width) == expected


def test_long_numeric_codes_keep_every_digit():
    assert normalize_code("23250112345678000190550010000055121000055120") == (
        "23250112345678000190550010000055121000055120"
    )


@pytest.mark.parametrize(
    "value, expected",
    [(None, 0), ("", 0), (100, 10000), ("50.50", 5050), (0.125, 13), ("-30", -3000)],
)
def test_to_cents(value, expected):
    assert to_cents(value, field="totalPrice") == expected


def test_to_cents_rejects_garbage():
    with pytest.raises(MalformedRecordError):
        to_cents("abc", field="totalPrice")


def test_sale_item_normalization_keeps_local_wall_clock_day():
    item = sale_item_from_payload(
        {
            "saleCode": " 1001 ",
            "itemSequence": "2",
            "storeCode": 1.0,
            "employeeCode": "42",
            "productRefCode": "REF-1",
            "originCode": "009",
            "operationCode": "000999",
            "saleDate": "2025-01-31T23:30:00-03:00",
            "quantity": 3,
            "unitPrice": "10.00",
            "totalPrice": "30.00",
        }
    )
    assert item.natural_key == ("1001", "REF-1", 2)
    assert item.store_code == "000001"
    assert item.employee_code == "000042"
    assert item.sale_date == date(2025, 1, 31)
    assert item.total_price_cents == 3000


def test_sale_item_without_key_is_malformed():
    with pytest.raises(MalformedRecordError):
        sale_item_from_payload({"itemSequence": 1, "storeCode": "1", "productRefCode": "R", "saleDate": "2025-01-01"})


def test_malformed_error_is_value_error():
    with pytest.raises(ValueError):
        sale_item_from_payload({"saleCode": "1", "itemSequence": "x", "storeCode": "1", "productRefCode": "R"})


def test_collaborator_payload():
    record = collaborator_from_payload(
        {
            "id": "7",
            "jobPositionCode": "03",
            "storeCode": "1",
            "name": " Maria Souza ",
            "birthDate": "1990-04-12",
            "commissionPercentage": "2.50",
            "email": "maria@example.com",
            "active": "S",
            "gender": "F",
        }
    )
    assert record.employee_code == "000007"
    assert record.store_code == "000001"
    assert record.name == "Maria Souza"
    assert record.birth_date == date(1990, 4, 12)
    assert record.commission_percentage == Decimal("2.5")


def test_store_payload_accepts_id_key():
    assert store_from_payload({"id": 3, "name": "Loja Iguatemi"}).code == "000003"


def test_classify_splits_by_key_and_batch_duplicates():
    existing = {("A",)}
    records = ["A", "B", "B", "C"]
    result = classify(records, lambda value: (value,), existing)

    assert result.new == ["B", "C"]
    assert result.existing == ["A", "B"]
    assert len(result) == len(records)


@pytest.mark.parametrize("payload", [None, "1001", 42, ["saleCode", "1001"]])
def test_non_object_payload_is_malformed(payload):
    with pytest.raises(MalformedRecordError):
        sale_item_from_payload(payload)


@pytest.mark.parametrize(
    "value, expected",
    [("2", 2), ("2.0", 2), (3.0, 3), (" -4 ", -4), ("12345678901234567890", 12345678901234567890)],
)
def test_to_int(value, expected):
    assert to_int(value, field="itemSequence") == expected


@pytest.mark.parametrize("value", ["1e3", "2.5", 2.5, "abc", True, float("inf")])
def test_to_int_rejects_non_integers(value):
    with pytest.raises(MalformedRecordError):
        to_int(value, field="itemSequence")
