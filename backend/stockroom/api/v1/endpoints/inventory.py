"""
在庫管理APIエンドポイント

このファイルでは在庫管理システムのREST APIエンドポイントを定義しています。
FastAPIを使用したRESTful API設計に従い、CRUD操作を提供します。

主要エンドポイント:
- GET /: 在庫一覧取得（検索・カテゴリ絞り込み対応）
- GET /stats: ダッシュボード統計情報取得
- GET /categories: カテゴリ一覧
- GET /low-stock/alert: 低在庫アイテム一覧
- GET /check-barcode/{barcode}: バーコード重複チェック
- GET /barcode/{barcode}: バーコードによるアイテム取得
- GET /{item_id}: 単一アイテム詳細取得
- POST /: 新規在庫アイテム作成
- PUT /{item_id}: 在庫アイテム更新（部分更新対応）
- DELETE /{item_id}: 在庫アイテム削除

設計原則:
- RESTful API設計
- HTTP ステータスコード準拠
- ドメイン例外は main.py の例外ハンドラで統一形式に変換
- 操作者ID（X-Actor-Id）を全ての書き込みに明示的に渡す

技術スタック:
- FastAPI（Webフレームワーク）
- Pydantic（データバリデーション）
- SQLAlchemy（ORM）
- 非同期処理
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from stockroom.api.deps import get_actor_id
from stockroom.core.database import get_db
from stockroom.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryItemResponse,
    InventoryListResponse,
    InventoryStats,
)
from stockroom.services.inventory_service import InventoryService

# APIルーター初期化
router = APIRouter()


@router.get("/", response_model=InventoryListResponse)
async def list_inventory(
    search: Optional[str] = None,
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    在庫一覧取得API

    URL Pattern: GET /api/v1/inventory/

    Query Parameters:
        search (str): 商品名・バーコード・説明の部分一致（大文字小文字区別なし）
        category (str): カテゴリ完全一致（"all" は絞り込みなし）

    Response:
        InventoryListResponse
        - items: 更新日時降順、最大200件
        - categories: 絞り込みUI用のカテゴリ一覧

    Example:
        GET /api/v1/inventory/?search=widget&category=Widgets
    """
    service = InventoryService(db)
    items = await service.list_items(search=search, category=category)
    categories = await service.list_categories()
    return {"items": items, "categories": categories}


@router.get("/stats", response_model=InventoryStats)
async def get_inventory_stats(
    db: AsyncSession = Depends(get_db)
):
    """Dashboard statistics summary"""
    service = InventoryService(db)
    return await service.get_inventory_stats()


@router.get("/categories", response_model=List[str])
async def list_categories(
    db: AsyncSession = Depends(get_db)
):
    service = InventoryService(db)
    return await service.list_categories()


@router.get("/low-stock/alert", response_model=List[InventoryItemResponse])
async def get_low_stock_items(
    db: AsyncSession = Depends(get_db)
):
    """
    低在庫アイテム取得API

    min_stock > 0 かつ quantity <= min_stock のアイテムを数量昇順で返します。
    発注リスト作成やダッシュボードのアラート表示に使用されます。
    """
    service = InventoryService(db)
    return await service.get_low_stock_items()


@router.get("/check-barcode/{barcode}")
async def check_barcode_exists(
    barcode: str,
    db: AsyncSession = Depends(get_db)
):
    """
    バーコード重複チェックAPI

    URL Pattern: GET /api/v1/inventory/check-barcode/{barcode}

    Response:
        {"exists": boolean}
        - exists=true: バーコードは既に使用済み
        - exists=false: バーコードは使用可能

    Example:
        GET /api/v1/inventory/check-barcode/123456789012
        → {"exists": true}
    """
    service = InventoryService(db)
    exists = await service.check_barcode_exists(barcode)
    return {"exists": exists}


@router.get("/barcode/{barcode}", response_model=InventoryItemResponse)
async def get_item_by_barcode(
    barcode: str,
    db: AsyncSession = Depends(get_db)
):
    """Look up an item by its barcode (used by the scanner before choosing an action)"""
    service = InventoryService(db)
    item = await service.get_item_by_barcode(barcode)
    if not item:
        raise HTTPException(
            status_code=404,
            detail={"message": "Item not found", "error_code": "NOT_FOUND", "barcode": barcode}
        )
    return item


@router.get("/{item_id}", response_model=InventoryItemResponse)
async def get_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get specific inventory item"""
    service = InventoryService(db)
    item = await service.get_item(item_id)
    if not item:
        raise HTTPException(
            status_code=404,
            detail={"message": "Inventory item not found", "error_code": "NOT_FOUND"}
        )
    return item


@router.post("/", response_model=InventoryItemResponse, status_code=201)
async def create_inventory_item(
    item: InventoryItemCreate,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    在庫アイテム新規作成API

    URL Pattern: POST /api/v1/inventory/

    処理フロー:
    1. Pydanticによる入力検証
    2. バーコード重複チェック
    3. データベース保存
    4. CREATED スキャンログ記録（quantity_change = 初期数量）
    5. WebSocket通知

    Status Codes:
        201: 作成成功
        400: バリデーションエラー
        409: バーコード重複（error_code: BARCODE_ALREADY_EXISTS）
        422: リクエスト形式エラー
    """
    service = InventoryService(db)
    return await service.create_item(item, actor_id)


@router.put("/{item_id}", response_model=InventoryItemResponse)
async def update_inventory_item(
    item_id: int,
    item_update: InventoryItemUpdate,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    在庫アイテム更新API

    部分更新（PATCH的動作）に対応し、指定されたフィールドのみ更新します。
    バーコードは変更できません。更新後に UPDATED スキャンログを記録します。

    Status Codes:
        200: 更新成功
        404: アイテムが存在しない
        422: 入力値エラー（負の数量等）
    """
    service = InventoryService(db)
    item = await service.update_item(item_id, item_update, actor_id)
    if not item:
        raise HTTPException(
            status_code=404,
            detail={"message": "Inventory item not found", "error_code": "NOT_FOUND"}
        )
    return item


@router.delete("/{item_id}")
async def delete_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    在庫アイテム削除API

    スキャンログは削除され、棚卸明細はスナップショット（バーコード・商品名）を
    残したまま参照のみ解除されます。
    """
    service = InventoryService(db)
    success = await service.delete_item(item_id)
    if not success:
        raise HTTPException(
            status_code=404,
            detail={"message": "Inventory item not found", "error_code": "NOT_FOUND"}
        )
    return {"message": "Inventory item deleted successfully"}
