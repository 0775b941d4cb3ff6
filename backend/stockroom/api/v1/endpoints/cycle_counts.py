"""
サイクルカウント（循環棚卸）APIエンドポイント

主要エンドポイント:
- GET /: セッション一覧（status 絞り込み、作成日時降順）
- POST /: セッション作成
- GET /{cycle_count_id}: セッション詳細（明細・サマリー付き）
- PUT /{cycle_count_id}/status: 状態遷移（RECONCILED で在庫へ反映）
- DELETE /{cycle_count_id}: セッション削除（NOT_STARTED / VOIDED のみ）
- GET /{cycle_count_id}/export: 明細CSVダウンロード
- PUT /entries/{entry_id}: 明細のカウント記録
- POST /entries/{entry_id}/skip: 明細のスキップ

エラー応答:
    ドメイン例外は {"detail": {"message", "error_code", ...}} 形式に変換されます。
    遷移エラーは current_status / requested_status を含みます。
"""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from stockroom.api.deps import get_actor_id
from stockroom.core.database import get_db
from stockroom.schemas.cycle_count import (
    CycleCountBase,
    CycleCountCreate,
    CycleCountCreated,
    CycleCountDetail,
    CycleCountEntryDetail,
    CycleCountListItem,
    CycleCountSummary,
    EntryCountRequest,
    StatusTransitionRequest,
    TransitionResponse,
)
from stockroom.services.cycle_count_service import CycleCountService
from stockroom.services.transfer_service import TransferService, content_disposition

# APIルーター初期化
router = APIRouter()


def _base_fields(cycle_count) -> dict:
    return CycleCountBase.model_validate(cycle_count).model_dump()


@router.get("/", response_model=List[CycleCountListItem])
async def list_cycle_counts(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    棚卸セッション一覧取得API

    URL Pattern: GET /api/v1/cycle-counts/?status=IN_PROGRESS

    Response:
        List[CycleCountListItem]
        - total_entries / counted_entries / variance_count
        - progress: round(counted / total * 100)、明細0件の場合は0
    """
    service = CycleCountService(db)
    rows = await service.list_counts(status=status)
    return [
        CycleCountListItem(
            **_base_fields(row["cycle_count"]),
            total_entries=row["total_entries"],
            counted_entries=row["counted_entries"],
            variance_count=row["variance_count"],
            progress=row["progress"],
        )
        for row in rows
    ]


@router.post("/", response_model=CycleCountCreated, status_code=201)
async def create_cycle_count(
    payload: CycleCountCreate,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    棚卸セッション作成API

    フィルタに一致する全アイテムについて、現在の数量を期待数量として
    PENDING 明細を作成します。

    Status Codes:
        201: 作成成功（entry_count = 明細数）
        400: 名前が空（VALIDATION_ERROR）、不明なフィルタ種別、
             一致アイテムなし（EMPTY_SELECTION、何も作成されない）
    """
    service = CycleCountService(db)
    cycle_count, entry_count = await service.create_cycle_count(
        payload.name,
        payload.filter_type,
        payload.filter_value,
        payload.notes,
        actor_id,
    )
    return CycleCountCreated(**_base_fields(cycle_count), entry_count=entry_count)


@router.put("/entries/{entry_id}", response_model=CycleCountEntryDetail)
async def record_entry_count(
    entry_id: int,
    payload: EntryCountRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    明細カウント記録API

    variance = counted_qty - expected_qty を記録し、セッションが NOT_STARTED の
    場合は IN_PROGRESS に遷移します。

    Status Codes:
        200: 記録成功
        400: 数量が0以上の整数でない、セッションが記録を受け付けない状態、再カウント禁止
        404: 明細が存在しない
    """
    service = CycleCountService(db)
    entry = await service.record_count(entry_id, payload.counted_qty, payload.adjustment_reason, actor_id)
    return entry


@router.post("/entries/{entry_id}/skip", response_model=CycleCountEntryDetail)
async def skip_entry(
    entry_id: int,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """Mark an entry SKIPPED; counted values are left untouched"""
    service = CycleCountService(db)
    return await service.skip_entry(entry_id, actor_id)


@router.get("/{cycle_count_id}", response_model=CycleCountDetail)
async def get_cycle_count(
    cycle_count_id: int,
    db: AsyncSession = Depends(get_db)
):
    """
    棚卸セッション詳細取得API

    Response:
        CycleCountDetail
        - entries: 作成順、参照アイテムの現在情報付き（削除済みの場合はnull）
        - summary: total / counted / skipped / pending / variance_count / total_variance
    """
    service = CycleCountService(db)
    cycle_count, summary = await service.get_count_with_summary(cycle_count_id)
    return CycleCountDetail(
        **_base_fields(cycle_count),
        entries=[CycleCountEntryDetail.model_validate(entry) for entry in cycle_count.entries],
        summary=CycleCountSummary(**summary),
    )


@router.put("/{cycle_count_id}/status", response_model=TransitionResponse)
async def transition_cycle_count(
    cycle_count_id: int,
    payload: StatusTransitionRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """
    状態遷移API

    遷移表:
        NOT_STARTED → IN_PROGRESS, VOIDED
        IN_PROGRESS → COUNTED, VOIDED
        COUNTED → RECONCILED, VOIDED

    RECONCILED への遷移では、差異のある COUNTED 明細の実数量を在庫に反映し、
    AUDITED ログを記録します（1トランザクション）。結果は reconciliation に含まれます。

    Status Codes:
        200: 遷移成功
        400: 許可されていない遷移（INVALID_TRANSITION）、不明なステータス
        404: セッションが存在しない
        500: 照合中のストレージ障害（STORAGE_ERROR、セッションは COUNTED のまま）
    """
    service = CycleCountService(db)
    cycle_count, reconciliation = await service.transition(cycle_count_id, payload.status, actor_id)
    return TransitionResponse(
        cycle_count=CycleCountBase.model_validate(cycle_count),
        reconciliation=reconciliation,
    )


@router.delete("/{cycle_count_id}")
async def delete_cycle_count(
    cycle_count_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Delete a NOT_STARTED or VOIDED session together with its entries"""
    service = CycleCountService(db)
    await service.delete_cycle_count(cycle_count_id)
    return {"success": True}


@router.get("/{cycle_count_id}/export")
async def export_cycle_count(
    cycle_count_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Download the session's entries as CSV"""
    service = TransferService(db)
    content, filename = await service.export_cycle_count_csv(cycle_count_id)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": content_disposition(filename)},
    )
