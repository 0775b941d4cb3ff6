"""
サイクルカウント用Pydanticスキーマ定義

主要なスキーマ:
- CycleCountCreate: セッション作成リクエスト
- EntryCountRequest: 明細のカウント記録リクエスト
- StatusTransitionRequest: 状態遷移リクエスト
- CycleCountListItem: 一覧用（進捗サマリー付き）
- CycleCountDetail: 詳細用（明細・サマリー付き）
- ReconciliationResult: 照合結果（適用件数・失敗件数）

入力値の妥当性（空の名前、負の数量等）はサービス層で検証し、
422ではなく400（ValidationError）として返します。
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from datetime import datetime

from stockroom.models.cycle_count import CycleCountStatus, EntryStatus, FilterType


class CycleCountCreate(BaseModel):
    """
    棚卸セッション作成リクエスト

    filter_type:
    - zone / aisle / row / bin / category: filter_value と一致するアイテムのみ
    - all または未指定: 全アイテム
    """
    name: str = Field("", description="セッション名（必須、空白のみ不可）")
    filter_type: Optional[str] = Field(None, description="zone/aisle/row/bin/category/all")
    filter_value: Optional[str] = Field(None, description="フィルタ値")
    notes: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Zone A Audit",
                "filter_type": "zone",
                "filter_value": "A",
                "notes": "Monthly count"
            }
        }
    )


class EntryCountRequest(BaseModel):
    counted_qty: Any = Field(None, description="実数量（0以上の整数）")
    adjustment_reason: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"counted_qty": 8, "adjustment_reason": "Two units damaged in storage"}
        }
    )


class StatusTransitionRequest(BaseModel):
    status: str = Field(..., description="遷移先ステータス")


class ItemBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barcode: str
    name: str
    quantity: int
    zone: Optional[str] = None
    aisle: Optional[str] = None
    row: Optional[str] = None
    bin: Optional[str] = None
    unit: Optional[str] = None


class CycleCountEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cycle_count_id: int
    inventory_item_id: Optional[int] = None
    item_barcode: str
    item_name: str
    expected_qty: int
    counted_qty: Optional[int] = None
    variance: Optional[int] = None
    status: EntryStatus
    adjustment_reason: Optional[str] = None
    counted_by: Optional[str] = None
    counted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CycleCountEntryDetail(CycleCountEntryResponse):
    inventory_item: Optional[ItemBrief] = None


class CycleCountBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    status: CycleCountStatus
    filter_type: FilterType
    filter_value: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CycleCountCreated(CycleCountBase):
    entry_count: int


class CycleCountListItem(CycleCountBase):
    """一覧用：進捗サマリー付き"""
    total_entries: int
    counted_entries: int
    variance_count: int
    progress: int = Field(..., description="round(counted / total * 100)、total=0の場合は0")


class CycleCountSummary(BaseModel):
    total_entries: int
    counted_entries: int
    skipped_entries: int
    pending_entries: int
    variance_count: int
    total_variance: int = Field(..., description="差異の絶対値合計（符号付き純額ではない）")


class CycleCountDetail(CycleCountBase):
    entries: List[CycleCountEntryDetail]
    summary: CycleCountSummary


class ReconciliationResult(BaseModel):
    applied: int = 0
    failed: int = 0
    errors: List[str] = []


class TransitionResponse(BaseModel):
    cycle_count: CycleCountBase
    reconciliation: Optional[ReconciliationResult] = None
