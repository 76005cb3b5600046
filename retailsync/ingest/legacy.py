"""Legacy ERP API client."""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Sequence

import httpx

from retailsync.utils.dates import format_date

logger = logging.getLogger(__name__)

DEFAULT_LEGACY_URL = "http://legacy-api:8081"
DEFAULT_TIMEOUT = 30.0


class LegacySourceError(RuntimeError):
    """The legacy API could not be reached or answered with an error."""

    def __init__(self, message: str, *, retriable: bool) -> None:
        super().__init__(message)
        self.retriable = retriable


class LegacyClient:
    """Thin wrapper over the legacy API.

    Every fetch returns the raw JSON records as a list of dicts, an empty list
    when nothing matches. Transport failures raise ``LegacySourceError``; the
    client never retries, a failed call fails the whole sync run.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or os.environ.get("LEGACY_API_URL", DEFAULT_LEGACY_URL)).rstrip("/")
        self.timeout = timeout or float(os.environ.get("LEGACY_API_TIMEOUT", DEFAULT_TIMEOUT))
        self.session = session or httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_sale_items(
        self,
        start: date,
        end: date,
        store_codes: Sequence[str],
        origin_codes: Sequence[str],
        operation_codes: Sequence[str],
    ) -> list[dict[str, Any]]:
        payload = _period_payload(start, end, store_codes, origin_codes, operation_codes)
        return await self._request("POST", "/sale-items/details", json=payload)

    async def fetch_exchanges(
        self,
        start: date,
        end: date,
        store_codes: Sequence[str],
        origin_codes: Sequence[str],
        operation_codes: Sequence[str],
    ) -> list[dict[str, Any]]:
        payload = _period_payload(start, end, store_codes, origin_codes, operation_codes)
        return await self._request("POST", "/exchanges", json=payload)

    async def fetch_active_employees(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/employees/active")

    async def fetch_stores(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/stores")

    async def _request(self, method: str, path: str, **kwargs: Any) -> list[dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise LegacySourceError(f"Timed out calling {url}", retriable=True) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise LegacySourceError(f"{url} answered {status}", retriable=status >= 500) from exc
        except httpx.TransportError as exc:
            raise LegacySourceError(f"Could not reach {url}: {exc}", retriable=True) from exc
        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as exc:
            raise LegacySourceError(f"Invalid JSON from {url}", retriable=False) from exc
        if data is None:
            return []
        if not isinstance(data, list):
            raise LegacySourceError(f"Unexpected payload from {url}: {type(data).__name__}", retriable=False)
        logger.debug("%s %s returned %s records", method, path, len(data))
        return data


def _period_payload(
    start: date,
    end: date,
    store_codes: Sequence[str],
    origin_codes: Sequence[str],
    operation_codes: Sequence[str],
) -> dict[str, Any]:
    return {
        "startDate": format_date(start),
        "endDate": format_date(end),
        "storeCodes": list(store_codes),
        "originCodes": list(origin_codes),
        "operationCodes": list(operation_codes),
    }
