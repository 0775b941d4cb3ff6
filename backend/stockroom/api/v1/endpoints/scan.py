"""
スキャンAPIエンドポイント

主要エンドポイント:
- POST /: バーコードスキャン（CREATE / INCREMENT / DECREMENT / AUDIT）
- GET /logs: スキャンログ一覧（新しい順）
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from stockroom.api.deps import get_actor_id
from stockroom.core.config import settings
from stockroom.core.database import get_db
from stockroom.schemas.scan import ScanLogResponse, ScanRequest, ScanResult
from stockroom.services.inventory_service import InventoryService

router = APIRouter()


@router.post("/", response_model=ScanResult)
async def scan_barcode(
    payload: ScanRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    バーコードスキャンAPI

    アクション:
    - CREATE: item の内容で新規作成（数量既定1）
    - INCREMENT: quantity_change（既定1）だけ加算
    - DECREMENT: |quantity_change|（既定1）だけ減算、0未満にはならない
    - AUDIT: 数量変更なし、AUDITED ログのみ

    Status Codes:
        200: 処理成功（action = created / incremented / decremented / audited）
        400: バーコード未指定、不明なアクション、CREATE時の商品情報欠落、INCREMENT の負数
        404: INCREMENT / DECREMENT 対象が存在しない
        409: CREATE 時のバーコード重複
    """
    service = InventoryService(db)
    return await service.scan(
        payload.barcode,
        payload.action,
        actor_id,
        item_data=payload.item,
        quantity_change=payload.quantity_change,
        notes=payload.notes,
    )


@router.get("/logs", response_model=List[ScanLogResponse])
async def list_scan_logs(
    barcode: Optional[str] = None,
    limit: int = Query(settings.SCAN_LOG_DEFAULT_LIMIT, ge=1),
    db: AsyncSession = Depends(get_db)
):
    """Scan history, newest first; limit is capped at SCAN_LOG_MAX_LIMIT"""
    service = InventoryService(db)
    logs = await service.scan_logs.list_logs(barcode=barcode, limit=limit)
    return [
        ScanLogResponse(
            id=log.id,
            barcode=log.barcode,
            action=log.action,
            quantity_change=log.quantity_change,
            notes=log.notes,
            scanned_by=log.scanned_by,
            inventory_item_id=log.inventory_item_id,
            item_name=log.inventory_item.name if log.inventory_item else None,
            created_at=log.created_at,
        )
        for log in logs
    ]
