"""
Sage Intacct sync endpoints
"""
import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.api.deps import get_http_client
from stockroom.core.database import get_db
from stockroom.services.sage_service import SageService, status_payload

router = APIRouter()


@router.post("/sync")
async def sync_to_sage(
    db: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client)
):
    """
    Push every inventory item to Sage Intacct.

    Response:
        {"message", "total", "synced", "failed", "errors"}
    """
    service = SageService(db, client)
    return await service.sync_items()


@router.get("/status")
async def sage_status(
    test: bool = False,
    db: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client)
):
    """With ?test=true, performs a live getAPISession round trip"""
    if test:
        service = SageService(db, client)
        return await service.test_connection()
    return status_payload()
