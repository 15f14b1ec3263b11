"""
External accounting API client.

Both ACCOUNTING_API_KEY and ACCOUNTING_BASE_URL must be set; otherwise calls
are skipped and return None.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class AccountingClient:
    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def create_sales_record(self, record: dict[str, Any]) -> dict[str, Any] | None:
        if not self.enabled:
            logger.debug("Accounting API not configured, skipping sales record %s", record.get("reference"))
            return None

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self._transport,
        ) as client:
            response = await client.post("/sales", json=record)
            response.raise_for_status()
            return response.json()

    def record_url(self, external_id: str) -> str | None:
        if not self.base_url:
            return None
        return f"{self.base_url}/sales/{external_id}"
