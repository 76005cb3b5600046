"""Ingestion data models.

Everything the legacy API sends is normalized here before any natural-key
comparison happens: codes become stripped strings (store and employee codes
zero-padded to six digits), timestamps lose their offset, money becomes
integer cents.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from retailsync.utils.dates import from_epoch_millis, parse_legacy_datetime

CODE_WIDTH = 6
NUMERIC_CODE_RE = re.compile(r"^(\d+)(?:\.0+)?$")
INTEGER_RE = re.compile(r"^([+-]?\d+)(?:\.0+)?$")


class EventSource(str, Enum):
    PDV = "PDV"
    DANFE = "DANFE"
    EXCHANGE = "EXCHANGE"


class OperationSource(str, Enum):
    SELL = "SELL"
    EXCHANGE = "EXCHANGE"


class MalformedRecordError(ValueError):
    """A single legacy record could not be normalized."""


@dataclass(slots=True)
class SaleItem:
    sale_code: str
    item_sequence: int
    store_code: str
    employee_code: str | None
    product_ref_code: str
    origin_code: str | None
    operation_code: str | None
    sale_date: date
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    ncm: str | None = None

    @property
    def natural_key(self) -> tuple[str, str, int]:
        return (self.sale_code, self.product_ref_code, self.item_sequence)


@dataclass(slots=True)
class ProductMaster:
    product_ref_code: str
    product_code: str | None
    section: str | None
    group: str | None
    subgroup: str | None
    brand: str | None
    description: str | None


@dataclass(slots=True)
class ExchangeRecord:
    document_code: str
    store_code: str
    operation_code: str | None
    origin_code: str | None
    employee_code: str | None
    document_number: str | None
    nfe_key: str | None
    issue_date: datetime | None
    observation: str | None
    new_sale_number: str | None = None
    new_sale_nfe_key: str | None = None

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.document_code, self.store_code)


@dataclass(slots=True)
class Collaborator:
    employee_code: str
    job_position_code: str | None
    store_code: str | None
    name: str | None
    birth_date: date | None
    commission_percentage: Decimal | None
    email: str | None
    active: str | None
    gender: str | None

    @property
    def natural_key(self) -> str:
        return self.employee_code


@dataclass(slots=True)
class StoreRecord:
    code: str
    name: str | None
    city: str | None

    @property
    def natural_key(self) -> str:
        return self.code


def normalize_code(value: Any, *, width: int = 0) -> str | None:
    """Canonical form of a legacy code.

    ``" 54 "`` and ``54.0`` both become ``"54"``; with ``width=6`` they become
    ``"000054"``. Non-numeric codes are only stripped.
    """
    if value is None:
        return None
    text = str(value).strip()
    match = NUMERIC_CODE_RE.match(text)
    if match:
        text = match.group(1)
        if width:
            text = (text.lstrip("0") or "0").zfill(width)
    return text or None


def as_payload(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise MalformedRecordError(f"expected an object, got {type(payload).__name__}")
    return payload


def record_label(payload: Any, field: str) -> Any:
    """What to call a raw record in log lines, whatever shape it came in."""
    if isinstance(payload, Mapping):
        return payload.get(field)
    return payload


def required_code(payload: Mapping[str, Any], field: str, *, width: int = 0) -> str:
    code = normalize_code(payload.get(field), width=width)
    if code is None:
        raise MalformedRecordError(f"missing {field}")
    return code


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_cents(value: Any, *, field: str) -> int:
    if value in (None, ""):
        return 0
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise MalformedRecordError(f"invalid {field}: {value!r}") from exc
    if not amount.is_finite():
        raise MalformedRecordError(f"invalid {field}: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_int(value: Any, *, field: str, default: int | None = None) -> int:
    if value in (None, ""):
        if default is None:
            raise MalformedRecordError(f"missing {field}")
        return default
    if isinstance(value, bool):
        raise MalformedRecordError(f"invalid {field}: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise MalformedRecordError(f"invalid {field}: {value!r}")
        return int(value)
    match = INTEGER_RE.match(str(value).strip())
    if match is None:
        raise MalformedRecordError(f"invalid {field}: {value!r}")
    return int(match.group(1))


def to_datetime(value: Any, *, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # epoch milliseconds
            return from_epoch_millis(value)
        return parse_legacy_datetime(str(value))
    except (ValueError, TypeError, OverflowError, OSError) as exc:
        raise MalformedRecordError(f"invalid {field}: {value!r}") from exc


def sale_item_from_payload(payload: Any) -> SaleItem:
    payload = as_payload(payload)
    sale_date = to_datetime(payload.get("saleDate"), field="saleDate")
    if sale_date is None:
        raise MalformedRecordError("missing saleDate")
    return SaleItem(
        sale_code=required_code(payload, "saleCode"),
        item_sequence=to_int(payload.get("itemSequence"), field="itemSequence"),
        store_code=required_code(payload, "storeCode", width=CODE_WIDTH),
        employee_code=normalize_code(payload.get("employeeCode"), width=CODE_WIDTH),
        product_ref_code=required_code(payload, "productRefCode"),
        origin_code=normalize_code(payload.get("originCode")),
        operation_code=normalize_code(payload.get("operationCode")),
        sale_date=sale_date.date(),
        quantity=to_int(payload.get("quantity"), field="quantity", default=0),
        unit_price_cents=to_cents(payload.get("unitPrice"), field="unitPrice"),
        total_price_cents=to_cents(payload.get("totalPrice"), field="totalPrice"),
        ncm=optional_text(payload.get("ncm")),
    )


def product_from_payload(payload: Any) -> ProductMaster:
    payload = as_payload(payload)
    return ProductMaster(
        product_ref_code=required_code(payload, "productRefCode"),
        product_code=optional_text(payload.get("productCode")),
        section=optional_text(payload.get("section")),
        group=optional_text(payload.get("group")),
        subgroup=optional_text(payload.get("subgroup")),
        brand=optional_text(payload.get("brand")),
        description=optional_text(payload.get("productDescription")),
    )


def exchange_from_payload(payload: Any) -> ExchangeRecord:
    payload = as_payload(payload)
    return ExchangeRecord(
        document_code=required_code(payload, "documentCode"),
        store_code=required_code(payload, "storeCode", width=CODE_WIDTH),
        operation_code=normalize_code(payload.get("operationCode")),
        origin_code=normalize_code(payload.get("originCode")),
        employee_code=normalize_code(payload.get("employeeCode"), width=CODE_WIDTH),
        document_number=optional_text(payload.get("documentNumber")),
        nfe_key=optional_text(payload.get("nfeKey")),
        issue_date=to_datetime(payload.get("issueDate"), field="issueDate"),
        observation=optional_text(payload.get("observation")),
    )


def collaborator_from_payload(payload: Any) -> Collaborator:
    payload = as_payload(payload)
    birth = to_datetime(payload.get("birthDate"), field="birthDate")
    commission = payload.get("commissionPercentage")
    try:
        commission_value = None if commission in (None, "") else Decimal(str(commission))
    except InvalidOperation as exc:
        raise MalformedRecordError(f"invalid commissionPercentage: {commission!r}") from exc
    return Collaborator(
        employee_code=required_code(payload, "id", width=CODE_WIDTH),
        job_position_code=normalize_code(payload.get("jobPositionCode")),
        store_code=normalize_code(payload.get("storeCode"), width=CODE_WIDTH),
        name=optional_text(payload.get("name")),
        birth_date=birth.date() if birth else None,
        commission_percentage=commission_value,
        email=optional_text(payload.get("email")),
        active=optional_text(payload.get("active")),
        gender=optional_text(payload.get("gender")),
    )


def store_from_payload(payload: Any) -> StoreRecord:
    payload = as_payload(payload)
    code = normalize_code(payload.get("code") or payload.get("id"), width=CODE_WIDTH)
    if code is None:
        raise MalformedRecordError("missing store code")
    return StoreRecord(
        code=code,
        name=optional_text(payload.get("name")),
        city=optional_text(payload.get("city")),
    )
