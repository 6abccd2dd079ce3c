"""
Pricing catalog client.

Reads pricing plans and add-on services from the external CMS API. The
wizard only uses them for display and budget/timeline defaults, so any
failure degrades to an empty list.
"""

import logging

import httpx

from lunaxcode.config import settings

logger = logging.getLogger(__name__)

PRICING_PATH = "/pricing-plans/"
ADDONS_PATH = "/addon-services/"


def _items(payload) -> list[dict]:
    """Accept both paginated ({"items": [...]}) and bare-list responses."""
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return payload["items"]
    if isinstance(payload, list):
        return payload
    return []


class CatalogClient:
    """Best-effort reader for the external pricing catalog."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _get(self, path: str) -> list[dict]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}{path}", headers={"Content-Type": "application/json"})
                resp.raise_for_status()
                return _items(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Catalog fetch failed for {path}: {e}")
            return []

    async def pricing_plans(self) -> list[dict]:
        return await self._get(PRICING_PATH)

    async def addon_services(self) -> list[dict]:
        return await self._get(ADDONS_PATH)

    async def reference_data(self) -> dict:
        plans = await self.pricing_plans()
        addons = await self.addon_services()
        return {"pricingTiers": plans, "addons": addons}


def get_catalog_client() -> CatalogClient:
    """FastAPI dependency."""
    return CatalogClient(settings.catalog_api_base_url, timeout=settings.catalog_timeout_seconds)
