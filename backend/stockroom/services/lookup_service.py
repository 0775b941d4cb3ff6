"""
Barcode product lookup

Tries public product databases in order (Open Food Facts, then UPCitemdb)
and falls back to using the barcode as the product name. Any transport
error, non-2xx response or miss simply moves on to the next source.
"""
from typing import Any, Dict, Optional

import httpx
import structlog

from stockroom.core.config import settings
from stockroom.core.exceptions import ValidationError

logger = structlog.get_logger(__name__)


class ProductLookupService:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def lookup(self, barcode: Optional[str]) -> Dict[str, str]:
        barcode = (barcode or "").strip()
        if not barcode:
            raise ValidationError("Barcode required", field="barcode")

        for source in (self._open_food_facts, self._upcitemdb):
            result = await source(barcode)
            if result is not None:
                logger.info("Product lookup hit", barcode=barcode, source=result["source"])
                return result

        logger.info("Product lookup miss", barcode=barcode)
        return {"name": barcode, "description": "", "category": "", "source": "none"}

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        try:
            response = await self.client.get(url, params=params, timeout=settings.LOOKUP_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Product lookup request failed", url=url, error=str(e))
            return None

    async def _open_food_facts(self, barcode: str) -> Optional[Dict[str, str]]:
        data = await self._get_json(settings.OPEN_FOOD_FACTS_URL.format(barcode=barcode))
        if not isinstance(data, dict) or data.get("status") != 1 or not data.get("product"):
            return None

        product = data["product"]
        categories = product.get("categories") or ""
        return {
            "name": product.get("product_name") or barcode,
            "description": product.get("generic_name") or "",
            "category": categories.split(",")[0].strip(),
            "source": "openfoodfacts",
        }

    async def _upcitemdb(self, barcode: str) -> Optional[Dict[str, str]]:
        data = await self._get_json(settings.UPCITEMDB_URL, params={"upc": barcode})
        if not isinstance(data, dict) or not data.get("items"):
            return None

        item = data["items"][0]
        return {
            "name": item.get("title") or barcode,
            "description": item.get("description") or "",
            "category": item.get("category") or "",
            "source": "upcitemdb",
        }
