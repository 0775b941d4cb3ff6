"""
Barcode product lookup endpoint
"""
import httpx
from fastapi import APIRouter, Depends
from typing import Optional

from stockroom.api.deps import get_http_client
from stockroom.services.lookup_service import ProductLookupService

router = APIRouter()


@router.get("/")
async def lookup_product(
    barcode: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client)
):
    """
    Suggest product details for an unknown barcode.

    Response:
        {"name", "description", "category", "source"}
        source is "openfoodfacts", "upcitemdb" or "none"
    """
    service = ProductLookupService(client)
    return await service.lookup(barcode)
