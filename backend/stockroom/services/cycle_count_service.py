"""
サイクルカウント（循環棚卸）ビジネスロジックサービス

棚卸セッションの作成、明細のカウント記録、状態遷移、在庫への照合反映を担当します。

ライフサイクル:
    NOT_STARTED → IN_PROGRESS → COUNTED → RECONCILED
    NOT_STARTED / IN_PROGRESS / COUNTED → VOIDED

主要機能:
- セッション作成（フィルタ一致アイテムの期待数量スナップショット）
- 明細カウント記録・スキップ
- 状態遷移（遷移表に基づく検証）
- 照合（COUNTED → RECONCILED）: 差異のある明細のみ在庫数量を上書きし AUDITED ログを追記
- 一覧・詳細サマリー

トランザクション:
- 各操作は1コミットで完結します
- 照合は数量更新・ログ追記・状態変更を1トランザクションで確定し、
  ストレージ障害時は全てロールバックしてセッションは COUNTED のまま残ります

技術スタック:
- SQLAlchemy（非同期ORM）
- Redis Pub/Sub + WebSocket（進捗通知）
- Structlog（構造化ログ）
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
import structlog

from stockroom.core.config import settings
from stockroom.core.exceptions import (
    EmptySelectionError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from stockroom.models.cycle_count import CycleCount, CycleCountEntry, CycleCountStatus, EntryStatus
from stockroom.models.scan_log import ScanAction
from stockroom.schemas.cycle_count import ReconciliationResult
from stockroom.services.count_filters import parse_filter
from stockroom.services.inventory_service import InventoryService
from stockroom.services.scan_log_service import ScanLogService
from stockroom.services.websocket_manager import manager

# 構造化ログ設定
logger = structlog.get_logger(__name__)


def parse_counted_qty(value: Any) -> int:
    """
    カウント数量の検証

    0以上の整数（または整数を表す文字列）のみ受け付けます。
    真偽値・小数・その他の型は拒否します。

    Raises:
        ValidationError: 不正な値または負数
    """
    if isinstance(value, bool):
        raise ValidationError("Counted quantity must be a non-negative integer", field="counted_qty")

    if isinstance(value, int):
        qty = value
    elif isinstance(value, float) and value.is_integer():
        qty = int(value)
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        qty = int(value.strip())
    else:
        raise ValidationError("Counted quantity must be a non-negative integer", field="counted_qty")

    if qty < 0:
        raise ValidationError("Counted quantity cannot be negative", field="counted_qty")
    return qty


def parse_status(value: Any) -> CycleCountStatus:
    """Resolve a requested status name; unknown names are a validation error"""
    try:
        return CycleCountStatus(str(value or "").strip().upper())
    except ValueError:
        allowed = ", ".join(member.value for member in CycleCountStatus)
        raise ValidationError(f"Unknown status '{value}'. Use one of: {allowed}", field="status")


def summarize_entries(entries: Iterable[CycleCountEntry]) -> Dict[str, int]:
    """
    明細サマリー計算

    Returns:
        dict: total_entries, counted_entries, skipped_entries, pending_entries,
              variance_count, total_variance（差異の絶対値合計）
    """
    entries = list(entries)
    counted = [e for e in entries if e.status == EntryStatus.COUNTED]
    with_variance = [e for e in counted if e.has_variance]
    return {
        "total_entries": len(entries),
        "counted_entries": len(counted),
        "skipped_entries": sum(1 for e in entries if e.status == EntryStatus.SKIPPED),
        "pending_entries": sum(1 for e in entries if e.status == EntryStatus.PENDING),
        "variance_count": len(with_variance),
        "total_variance": sum(abs(e.variance) for e in with_variance),
    }


def progress_percent(counted: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round(counted / total * 100))


def reconciliation_note(cycle_count: CycleCount, entry: CycleCountEntry) -> str:
    note = (
        f"Cycle count reconciliation: {cycle_count.name}. "
        f"Expected: {entry.expected_qty}, Counted: {entry.counted_qty}. "
        f"{entry.adjustment_reason or ''}"
    )
    return note.strip()


class CycleCountService:
    """
    サイクルカウントサービスクラス

    在庫アイテムの数量変更は InventoryService、監査ログは ScanLogService を
    経由して行います。操作者IDは全操作に明示的に渡されます。

    使用例:
    ```python
    service = CycleCountService(db_session)
    cycle_count = await service.create_cycle_count("Zone A Audit", "zone", "A", None, actor_id="user-1")
    ```
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.inventory = InventoryService(db)
        self.scan_logs = ScanLogService(db)

    async def list_counts(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        棚卸セッション一覧（作成日時降順）

        Args:
            status (Optional[str]): ステータス絞り込み

        Returns:
            List[dict]: セッション + total_entries / counted_entries / variance_count / progress
        """
        query = select(CycleCount).options(selectinload(CycleCount.entries))
        if status:
            query = query.where(CycleCount.status == parse_status(status))
        query = query.order_by(CycleCount.created_at.desc(), CycleCount.id.desc())
        query = query.execution_options(populate_existing=True)

        result = await self.db.execute(query)
        cycle_counts = result.scalars().all()

        rows = []
        for cycle_count in cycle_counts:
            summary = summarize_entries(cycle_count.entries)
            rows.append({
                "cycle_count": cycle_count,
                "total_entries": summary["total_entries"],
                "counted_entries": summary["counted_entries"],
                "variance_count": summary["variance_count"],
                "progress": progress_percent(summary["counted_entries"], summary["total_entries"]),
            })

        logger.info("Retrieved cycle counts", count=len(rows), status=status)
        return rows

    async def get_count(self, cycle_count_id: int) -> Optional[CycleCount]:
        """セッション取得（明細・参照アイテムを含む、明細は作成順）"""
        query = (
            select(CycleCount)
            .options(selectinload(CycleCount.entries).selectinload(CycleCountEntry.inventory_item))
            .where(CycleCount.id == cycle_count_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_count_with_summary(self, cycle_count_id: int) -> Tuple[CycleCount, Dict[str, int]]:
        cycle_count = await self.get_count(cycle_count_id)
        if cycle_count is None:
            raise NotFoundError("Cycle count not found", cycle_count_id=cycle_count_id)
        return cycle_count, summarize_entries(cycle_count.entries)

    async def get_entry(self, entry_id: int) -> Optional[CycleCountEntry]:
        query = (
            select(CycleCountEntry)
            .options(
                selectinload(CycleCountEntry.cycle_count),
                selectinload(CycleCountEntry.inventory_item),
            )
            .where(CycleCountEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create_cycle_count(
        self,
        name: str,
        filter_type: Optional[str],
        filter_value: Optional[str],
        notes: Optional[str],
        actor_id: Optional[str],
    ) -> Tuple[CycleCount, int]:
        """
        棚卸セッション作成

        作成フロー:
        1. 名前の検証（空白のみ不可）
        2. フィルタ解決（FilterSpec）と対象アイテム抽出
        3. セッション + 明細（PENDING、expected_qty = 現在数量）を1コミットで永続化
        4. 進捗通知

        Returns:
            Tuple[CycleCount, int]: 作成されたセッションと明細数

        Raises:
            ValidationError: 名前が空、または不明なフィルタ種別
            EmptySelectionError: フィルタに一致するアイテムがない（何も永続化しない）
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required", field="name")

        item_filter = parse_filter(filter_type, filter_value)
        items = await self.inventory.find_matching(item_filter)
        if not items:
            logger.info("Cycle count not created - empty selection",
                        filter_type=item_filter.kind.value, filter_value=item_filter.value)
            raise EmptySelectionError(
                "No items match the selected filter",
                filter_type=item_filter.kind.value,
                filter_value=item_filter.value,
            )

        cycle_count = CycleCount(
            name=name,
            filter_type=item_filter.kind,
            filter_value=item_filter.value,
            notes=(notes or "").strip() or None,
            status=CycleCountStatus.NOT_STARTED,
            created_by=actor_id,
        )
        for item in items:
            cycle_count.entries.append(
                CycleCountEntry(
                    inventory_item_id=item.id,
                    item_barcode=item.barcode,
                    item_name=item.name,
                    expected_qty=item.quantity,
                    status=EntryStatus.PENDING,
                )
            )

        self.db.add(cycle_count)
        await self._commit("create_cycle_count")

        await self._notify(cycle_count, "created")

        logger.info("Created cycle count",
                    cycle_count_id=cycle_count.id,
                    name=cycle_count.name,
                    filter_type=item_filter.kind.value,
                    filter_value=item_filter.value,
                    entry_count=len(items))
        return cycle_count, len(items)

    async def record_count(
        self,
        entry_id: int,
        counted_qty: Any,
        adjustment_reason: Optional[str],
        actor_id: Optional[str],
    ) -> CycleCountEntry:
        """
        明細のカウント記録

        - variance = counted_qty - expected_qty
        - 既に COUNTED の明細は ALLOW_RECOUNT が有効な場合のみ上書き
        - 親セッションが NOT_STARTED の場合、同じコミットで IN_PROGRESS に遷移し started_at を記録

        Raises:
            NotFoundError: 明細が存在しない
            ValidationError: 数量が0以上の整数でない
            InvalidStateError: セッションが記録を受け付けない状態、または再カウント禁止
        """
        entry = await self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found", entry_id=entry_id)

        qty = parse_counted_qty(counted_qty)

        cycle_count = entry.cycle_count
        if not cycle_count.is_open:
            raise InvalidStateError(
                f"Cannot record counts while cycle count is {cycle_count.status.value}",
                current_status=cycle_count.status.value,
            )
        if entry.status == EntryStatus.COUNTED and not settings.ALLOW_RECOUNT:
            raise InvalidStateError("Entry has already been counted", entry_id=entry_id)

        now = datetime.now(timezone.utc)
        entry.counted_qty = qty
        entry.variance = qty - entry.expected_qty
        entry.status = EntryStatus.COUNTED
        entry.counted_by = actor_id
        entry.counted_at = now
        entry.adjustment_reason = (adjustment_reason or "").strip() or None

        started = self._auto_start(cycle_count, now)

        await self._commit("record_count")

        await self._notify(cycle_count, "entry_counted", entry_id=entry.id, variance=entry.variance)
        if started:
            await self._notify(cycle_count, "status_changed")

        logger.info("Recorded cycle count entry",
                    entry_id=entry.id,
                    cycle_count_id=cycle_count.id,
                    expected=entry.expected_qty,
                    counted=qty,
                    variance=entry.variance,
                    auto_started=started)
        return entry

    async def skip_entry(self, entry_id: int, actor_id: Optional[str]) -> CycleCountEntry:
        """
        明細のスキップ

        ステータスのみ SKIPPED に変更し、他のフィールドは保持します。
        SKIP_STARTS_COUNT が有効な場合のみ親セッションを IN_PROGRESS に進めます。
        """
        entry = await self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found", entry_id=entry_id)

        cycle_count = entry.cycle_count
        if not cycle_count.is_open:
            raise InvalidStateError(
                f"Cannot skip entries while cycle count is {cycle_count.status.value}",
                current_status=cycle_count.status.value,
            )

        entry.status = EntryStatus.SKIPPED
        started = False
        if settings.SKIP_STARTS_COUNT:
            started = self._auto_start(cycle_count, datetime.now(timezone.utc))

        await self._commit("skip_entry")

        await self._notify(cycle_count, "entry_skipped", entry_id=entry.id)

        logger.info("Skipped cycle count entry",
                    entry_id=entry.id, cycle_count_id=cycle_count.id, actor_id=actor_id, auto_started=started)
        return entry

    async def transition(
        self,
        cycle_count_id: int,
        target: Any,
        actor_id: Optional[str],
    ) -> Tuple[CycleCount, Optional[ReconciliationResult]]:
        """
        セッション状態遷移

        - 遷移表にない組み合わせは InvalidTransitionError（状態は変更しない）
        - COUNTED / RECONCILED は completed_at を記録
        - IN_PROGRESS への明示的な遷移は started_at が未設定なら記録
        - RECONCILED への遷移は照合を実行し、結果を返す

        Returns:
            Tuple[CycleCount, Optional[ReconciliationResult]]

        Raises:
            ValidationError: 不明なステータス
            NotFoundError: セッションが存在しない
            InvalidTransitionError: 許可されていない遷移
            StorageError: 照合中のストレージ障害（全てロールバック）
        """
        target_status = parse_status(target)

        cycle_count = await self.get_count(cycle_count_id)
        if cycle_count is None:
            raise NotFoundError("Cycle count not found", cycle_count_id=cycle_count_id)

        current_status = CycleCountStatus(cycle_count.status)
        if not cycle_count.can_transition_to(target_status):
            logger.info("Rejected cycle count transition",
                        cycle_count_id=cycle_count_id,
                        current_status=current_status.value,
                        requested_status=target_status.value)
            raise InvalidTransitionError(current_status.value, target_status.value)

        now = datetime.now(timezone.utc)
        reconciliation = None

        try:
            if target_status == CycleCountStatus.RECONCILED:
                reconciliation = await self._reconcile(cycle_count, actor_id)

            cycle_count.status = target_status
            if target_status == CycleCountStatus.IN_PROGRESS and cycle_count.started_at is None:
                cycle_count.started_at = now
            if target_status in (CycleCountStatus.COUNTED, CycleCountStatus.RECONCILED):
                cycle_count.completed_at = now

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Cycle count transition failed",
                         cycle_count_id=cycle_count_id,
                         requested_status=target_status.value,
                         error=str(e))
            raise StorageError(
                "Failed to persist cycle count transition",
                cycle_count_id=cycle_count_id,
                requested_status=target_status.value,
            )

        await self._notify(cycle_count, "status_changed", previous_status=current_status.value)
        if reconciliation is not None and reconciliation.applied:
            await manager.send_inventory_update({
                "action": "reconciled",
                "cycle_count_id": cycle_count.id,
                "applied": reconciliation.applied,
            })

        logger.info("Cycle count transitioned",
                    cycle_count_id=cycle_count.id,
                    from_status=current_status.value,
                    to_status=target_status.value,
                    applied=reconciliation.applied if reconciliation else None,
                    failed=reconciliation.failed if reconciliation else None)
        return cycle_count, reconciliation

    async def delete_cycle_count(self, cycle_count_id: int) -> None:
        """
        セッション削除（NOT_STARTED / VOIDED のみ、明細はカスケード削除）

        Raises:
            NotFoundError: セッションが存在しない
            InvalidStateError: 削除できない状態
        """
        cycle_count = await self.get_count(cycle_count_id)
        if cycle_count is None:
            raise NotFoundError("Cycle count not found", cycle_count_id=cycle_count_id)

        if not cycle_count.is_deletable:
            raise InvalidStateError(
                "Can only delete counts that are Not Started or Voided",
                current_status=CycleCountStatus(cycle_count.status).value,
            )

        await self.db.delete(cycle_count)
        await self._commit("delete_cycle_count")

        await manager.send_cycle_count_update({"action": "deleted", "cycle_count": {"id": cycle_count_id}})
        logger.info("Deleted cycle count", cycle_count_id=cycle_count_id)

    async def _reconcile(self, cycle_count: CycleCount, actor_id: Optional[str]) -> ReconciliationResult:
        """
        照合処理（コミットしない）

        COUNTED かつ差異が0でない明細について、作成順に:
        1. 在庫数量を counted_qty で上書き
        2. AUDITED ログ（quantity_change = variance）を追記

        参照先アイテムが削除済みの明細は失敗として集計し、他の明細の反映は続行します。
        """
        result = ReconciliationResult()

        for entry in cycle_count.entries:
            if not entry.has_variance:
                continue

            applied = False
            if entry.inventory_item_id is not None:
                applied = await self.inventory.apply_quantity(entry.inventory_item_id, entry.counted_qty)

            if not applied:
                result.failed += 1
                result.errors.append(f"{entry.item_barcode}: item no longer exists")
                logger.warning("Reconciliation skipped entry - item missing",
                               cycle_count_id=cycle_count.id,
                               entry_id=entry.id,
                               barcode=entry.item_barcode)
                continue

            await self.scan_logs.append(
                entry.item_barcode,
                ScanAction.AUDITED,
                actor_id,
                inventory_item_id=entry.inventory_item_id,
                quantity_change=entry.variance,
                notes=reconciliation_note(cycle_count, entry),
            )
            result.applied += 1

        return result

    @staticmethod
    def _auto_start(cycle_count: CycleCount, now: datetime) -> bool:
        """NOT_STARTED のセッションを IN_PROGRESS に進める（進めた場合True）"""
        if cycle_count.status != CycleCountStatus.NOT_STARTED:
            return False
        cycle_count.status = CycleCountStatus.IN_PROGRESS
        if cycle_count.started_at is None:
            cycle_count.started_at = now
        return True

    async def _commit(self, operation: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Cycle count commit failed", operation=operation, error=str(e))
            raise StorageError(f"Failed to persist {operation.replace('_', ' ')}")

    async def _notify(self, cycle_count: CycleCount, action: str, **extra: Any):
        """Realtime cycle count notification (fire-and-forget)"""
        payload = {
            "action": action,
            "cycle_count": {
                "id": cycle_count.id,
                "name": cycle_count.name,
                "status": CycleCountStatus(cycle_count.status).value,
            },
        }
        payload.update(extra)
        await manager.send_cycle_count_update(payload)
