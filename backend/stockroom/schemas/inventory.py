"""
在庫管理システム用Pydanticスキーマ定義

このファイルでは、在庫データのバリデーション、シリアライゼーション、
ドキュメント生成のためのスキーマを定義しています。

主要なスキーマ:
- InventoryItemBase: 共通の基本フィールド
- InventoryItemCreate: 新規作成用（barcode・name必須）
- InventoryItemUpdate: 部分更新用（全フィールドオプション、barcodeは変更不可）
- InventoryItemResponse: API応答用（計算フィールド含む）
- InventoryStats: ダッシュボード統計
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime

from stockroom.models.inventory import ItemCondition
from stockroom.models.scan_log import ScanAction


class InventoryItemBase(BaseModel):
    """
    在庫アイテムの基本スキーマクラス

    フィールド詳細:
    - name: 商品名
    - description: 商品説明（オプション）
    - zone / aisle / row / bin: ロケーション（全て任意の自由テキスト）
    - unit: 単位
    - category: カテゴリ
    - condition: 商品状態（NEW, GOOD, FAIR, POOR, DAMAGED）
    - min_stock: 発注点
    - cost_price: 原価（オプション）
    """
    name: str = Field(..., min_length=1, max_length=255, description="商品名")
    description: Optional[str] = Field(None, description="商品説明")
    zone: Optional[str] = Field(None, max_length=100, description="ゾーン")
    aisle: Optional[str] = Field(None, max_length=100, description="通路")
    row: Optional[str] = Field(None, max_length=100, description="列")
    bin: Optional[str] = Field(None, max_length=100, description="棚番")
    unit: Optional[str] = Field(None, max_length=50, description="単位")
    category: Optional[str] = Field(None, max_length=100, description="カテゴリ")
    condition: ItemCondition = Field(ItemCondition.GOOD, description="商品状態")
    min_stock: int = Field(0, ge=0, description="発注点 - 0は低在庫判定対象外")
    cost_price: Optional[float] = Field(None, ge=0, description="原価")


class InventoryItemCreate(InventoryItemBase):
    """
    在庫アイテム新規作成用スキーマ

    手動登録およびスキャン（CREATE）で使用されます。

    用途:
    - POST /api/v1/inventory/ エンドポイント
    - POST /api/v1/scan/ （action=CREATE の item ペイロード）
    """
    barcode: str = Field(..., min_length=1, max_length=128, description="バーコード - ユニーク")
    quantity: int = Field(1, ge=0, description="初期在庫数")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "barcode": "123456789012",
                "name": "Widget A",
                "description": "A standard widget",
                "quantity": 50,
                "zone": "Zone A",
                "aisle": "A-1",
                "row": "R-3",
                "bin": "B-12",
                "unit": "each",
                "category": "Widgets",
                "condition": "GOOD",
                "min_stock": 10,
                "cost_price": 4.99
            }
        }
    )


class ScanItemPayload(InventoryItemBase):
    """Item details sent with a CREATE scan (barcode comes from the scan itself)"""
    quantity: int = Field(1, ge=0)


class InventoryItemUpdate(BaseModel):
    """
    在庫アイテム部分更新用スキーマ

    指定されたフィールドのみ更新します。barcode は作成後変更できないため含みません。
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    zone: Optional[str] = Field(None, max_length=100)
    aisle: Optional[str] = Field(None, max_length=100)
    row: Optional[str] = Field(None, max_length=100)
    bin: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=100)
    condition: Optional[ItemCondition] = None
    min_stock: Optional[int] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "quantity": 25,
                "bin": "B-14",
                "condition": "FAIR"
            }
        }
    )


class InventoryItemResponse(InventoryItemBase):
    """
    在庫アイテムAPI応答用スキーマ

    応答専用フィールド:
    - id, barcode, quantity
    - location: ロケーション文字列（計算値）
    - is_low_stock: 低在庫フラグ（計算値）
    - sage_item_id, created_by, created_at, updated_at
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    barcode: str
    quantity: int
    sage_item_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    location: str = Field("", description="zone / aisle / row / bin")
    is_low_stock: bool = Field(False, description="min_stock > 0 かつ quantity <= min_stock")


class RecentActivity(BaseModel):
    id: int
    barcode: str
    action: ScanAction
    item_name: str
    created_at: Optional[datetime] = None


class InventoryStats(BaseModel):
    """Dashboard statistics"""
    total_items: int
    total_quantity: int
    low_stock_count: int
    scans_today: int
    recent_activity: List[RecentActivity] = []


class InventoryListResponse(BaseModel):
    items: List[InventoryItemResponse]
    categories: List[str]
