"""Target auto-discovery from Cloudflare proxied DNS records."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from uptime_reconciler.models import MonitorTarget

logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"
PAGE_SIZE = 100


class DiscoveryError(RuntimeError):
    """Raised when the DNS directory cannot be listed."""


def record_to_target(record: dict[str, Any]) -> MonitorTarget:
    name = record["name"]
    return MonitorTarget(
        id=name,
        name=name,
        target=f"https://{name}/",
        tooltip=f"https://{name}/",
        method="GET",
    )


class CloudflareDiscovery:
    """Lists proxied DNS records of one zone and turns them into targets."""

    def __init__(
        self,
        zone_id: str,
        api_token: str,
        base_url: str = CLOUDFLARE_API_URL,
        timeout_s: float = 10,
    ) -> None:
        self.zone_id = zone_id
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    async def _fetch_records(self, **filters: str) -> list[dict[str, Any]]:
        url = f"{self.base_url}/zones/{self.zone_id}/dns_records"
        headers = {"Authorization": f"Bearer {self.api_token}"}
        records: list[dict[str, Any]] = []
        page = 1

        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            while True:
                params = {"proxied": "true", "page": str(page), "per_page": str(PAGE_SIZE), **filters}
                response = await client.get(url, headers=headers, params=params)
                if not response.is_success:
                    raise DiscoveryError(f"Cloudflare API returned HTTP {response.status_code}")

                payload = response.json()
                if not payload.get("success", False):
                    raise DiscoveryError(f"Cloudflare API error: {payload.get('errors')}")

                records.extend(payload.get("result") or [])

                info = payload.get("result_info") or {}
                if page >= int(info.get("total_pages", 1)):
                    break
                page += 1

        return records

    async def __call__(self) -> list[MonitorTarget]:
        records = await self._fetch_records()
        targets = [record_to_target(record) for record in records]
        logger.info("Discovered %d targets from DNS", len(targets))
        return targets

    async def find(self, name: str) -> MonitorTarget | None:
        """Return the discovered target whose record name is ``name``, if any."""
        records = await self._fetch_records(name=name)
        return record_to_target(records[0]) if records else None
