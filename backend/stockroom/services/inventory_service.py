"""
在庫管理ビジネスロジックサービス

このファイルでは、在庫アイテムに関するビジネスロジックを実装しています。
データベース操作、スキャンログ記録、リアルタイム通知、統計情報生成を担当します。

主要機能:
- CRUD操作（作成、取得、更新、削除）
- バーコード重複チェック
- スキャン操作（CREATE / INCREMENT / DECREMENT / AUDIT）
- 低在庫アイテム抽出
- ダッシュボード統計
- 棚卸エンジン向けコラボレータ（find_matching / apply_quantity）

技術スタック:
- SQLAlchemy（非同期ORM）
- Redis Pub/Sub + WebSocket（リアルタイム通知）
- Structlog（構造化ログ）
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, delete, func, or_, and_
from sqlalchemy.orm import selectinload
from datetime import datetime, timezone
from typing import List, Optional
import structlog

from stockroom.core.config import settings
from stockroom.core.exceptions import DuplicateBarcodeError, NotFoundError, ValidationError
from stockroom.models.cycle_count import CycleCountEntry
from stockroom.models.inventory import InventoryItem
from stockroom.models.scan_log import ScanLog, ScanAction
from stockroom.schemas.inventory import InventoryItemCreate, InventoryItemUpdate
from stockroom.services.count_filters import FilterSpec
from stockroom.services.scan_log_service import ScanLogService
from stockroom.services.websocket_manager import manager

# 構造化ログ設定
logger = structlog.get_logger(__name__)

SCAN_ACTIONS = ("CREATE", "INCREMENT", "DECREMENT", "AUDIT")

# NOT NULL columns an update may omit but never clear
REQUIRED_FIELDS = ("name", "quantity", "condition", "min_stock")


class InventoryService:
    """
    在庫管理サービスクラス

    在庫アイテムの全ビジネスロジックを担当するサービス層クラスです。

    設計パターン:
    - サービス層パターン（ビジネスロジックの集約）
    - リポジトリパターン（データアクセス抽象化）

    主要責務:
    1. データ永続化
    2. スキャンログ記録（監査証跡）
    3. ビジネスルール適用（数量の非負性、バーコード不変性）
    4. リアルタイム通知

    使用例:
    ```python
    service = InventoryService(db_session)
    item = await service.create_item(item_data, actor_id="user-1")
    ```
    """

    def __init__(self, db: AsyncSession):
        """
        サービス初期化

        Args:
            db (AsyncSession): SQLAlchemy非同期データベースセッション
        """
        self.db = db
        self.scan_logs = ScanLogService(db)

    async def list_items(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[InventoryItem]:
        """
        在庫一覧取得（検索・カテゴリ絞り込み対応）

        Args:
            search (Optional[str]): 商品名・バーコード・説明の部分一致
            category (Optional[str]): カテゴリ完全一致（"all" は絞り込みなし）
            limit (Optional[int]): 取得件数上限（既定: INVENTORY_LIST_LIMIT）

        Returns:
            List[InventoryItem]: 更新日時降順
        """
        query = select(InventoryItem)

        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    InventoryItem.name.ilike(pattern),
                    InventoryItem.barcode.ilike(pattern),
                    InventoryItem.description.ilike(pattern),
                )
            )
        if category and category != "all":
            query = query.where(InventoryItem.category == category)

        query = query.order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc())
        query = query.limit(limit or settings.INVENTORY_LIST_LIMIT)

        result = await self.db.execute(query)
        items = result.scalars().all()

        logger.info("Retrieved inventory list", count=len(items), search=search, category=category)
        return items

    async def list_categories(self) -> List[str]:
        """Distinct non-empty categories, alphabetical"""
        query = (
            select(InventoryItem.category)
            .where(InventoryItem.category.is_not(None))
            .where(InventoryItem.category != "")
            .distinct()
            .order_by(InventoryItem.category)
        )
        result = await self.db.execute(query)
        return [row for row in result.scalars().all()]

    async def check_barcode_exists(self, barcode: str) -> bool:
        """
        バーコード重複チェック

        新規作成前の重複確認やフロントエンドのリアルタイム検証で使用されます。

        Returns:
            bool: 重複の有無（True=存在する、False=使用可能）
        """
        existing_item = await self.get_item_by_barcode(barcode)
        logger.info("Barcode existence check", barcode=barcode, exists=existing_item is not None)
        return existing_item is not None

    async def get_item(self, item_id: int) -> Optional[InventoryItem]:
        query = select(InventoryItem).where(InventoryItem.id == item_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_item_by_barcode(self, barcode: str) -> Optional[InventoryItem]:
        query = select(InventoryItem).where(InventoryItem.barcode == barcode)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create_item(
        self,
        item_data: InventoryItemCreate,
        actor_id: Optional[str],
        notes: Optional[str] = None,
    ) -> InventoryItem:
        """
        新規在庫アイテム作成

        作成フロー:
        1. バーコード重複チェック
        2. データベースへの永続化
        3. スキャンログ記録（CREATED、quantity_change = 初期数量）
        4. WebSocketリアルタイム通知

        Args:
            item_data (InventoryItemCreate): 作成データ
            actor_id (Optional[str]): 操作者ID
            notes (Optional[str]): スキャンログ備考

        Returns:
            InventoryItem: 作成された在庫アイテム

        Raises:
            DuplicateBarcodeError: バーコード重複時
        """
        barcode = item_data.barcode.strip()
        if not barcode:
            raise ValidationError("Barcode is required", field="barcode")

        if await self.check_barcode_exists(barcode):
            raise DuplicateBarcodeError(barcode)

        data = item_data.model_dump()
        data["barcode"] = barcode
        db_item = InventoryItem(**data, created_by=actor_id)

        self.db.add(db_item)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning("Create failed - duplicate barcode", barcode=barcode)
            raise DuplicateBarcodeError(barcode)
        await self.db.refresh(db_item)

        await self.scan_logs.record(
            barcode,
            ScanAction.CREATED,
            actor_id,
            inventory_item_id=db_item.id,
            quantity_change=db_item.quantity,
            notes=notes,
        )
        await self.db.refresh(db_item)

        await self._send_inventory_update(db_item, "created")

        logger.info("Created new inventory item", item_id=db_item.id, barcode=db_item.barcode)
        return db_item

    async def update_item(
        self,
        item_id: int,
        item_update: InventoryItemUpdate,
        actor_id: Optional[str],
    ) -> Optional[InventoryItem]:
        """
        在庫アイテム部分更新

        変更されたフィールドのみ更新し（exclude_unset=True）、UPDATED ログを記録します。
        バーコードは更新対象外です。

        Returns:
            Optional[InventoryItem]: 更新後のアイテム（見つからない場合None）

        Raises:
            ValidationError: name / quantity / condition / min_stock に null を指定した場合
        """
        existing_item = await self.get_item(item_id)
        if not existing_item:
            logger.warning("Update failed - item not found", item_id=item_id)
            return None

        update_data = item_update.model_dump(exclude_unset=True)
        for field in REQUIRED_FIELDS:
            if field in update_data and update_data[field] is None:
                raise ValidationError(f"{field} cannot be null", field=field)
        logger.info("Preparing partial update", item_id=item_id, fields=list(update_data.keys()))

        for field, value in update_data.items():
            setattr(existing_item, field, value)

        await self.db.commit()
        await self.db.refresh(existing_item)

        await self.scan_logs.record(
            existing_item.barcode,
            ScanAction.UPDATED,
            actor_id,
            inventory_item_id=existing_item.id,
        )
        await self.db.refresh(existing_item)

        if existing_item.is_low_stock:
            await self._send_stock_alert(existing_item)
        await self._send_inventory_update(existing_item, "updated")

        logger.info("Updated inventory item", item_id=item_id, barcode=existing_item.barcode)
        return existing_item

    async def delete_item(self, item_id: int) -> bool:
        """
        在庫アイテム削除

        削除フロー:
        1. 存在確認
        2. スキャンログの削除（カスケード）
        3. 棚卸明細の参照をNULL化（明細のスナップショットは保持）
        4. アイテムの物理削除
        5. WebSocket削除通知

        Returns:
            bool: 削除成功の可否（False=アイテム未存在）
        """
        existing_item = await self.get_item(item_id)
        if not existing_item:
            return False

        barcode = existing_item.barcode
        await self.db.execute(delete(ScanLog).where(ScanLog.inventory_item_id == item_id))
        await self.db.execute(
            update(CycleCountEntry)
            .where(CycleCountEntry.inventory_item_id == item_id)
            .values(inventory_item_id=None)
        )
        await self.db.execute(delete(InventoryItem).where(InventoryItem.id == item_id))
        await self.db.commit()

        await manager.send_inventory_update({"action": "deleted", "item": {"id": item_id, "barcode": barcode}})

        logger.info("Deleted inventory item", item_id=item_id, barcode=barcode)
        return True

    async def scan(
        self,
        barcode: str,
        action: str,
        actor_id: Optional[str],
        item_data=None,
        quantity_change: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> dict:
        """
        スキャン操作

        アクション:
        - CREATE: 新規アイテム作成（数量既定1、状態既定GOOD）
        - INCREMENT: 数量加算（既定1）
        - DECREMENT: 数量減算（|quantity_change|、既定1、0未満にはしない）
        - AUDIT: 数量変更なしで AUDITED ログのみ記録

        Returns:
            dict: {"action": "created" | "incremented" | "decremented" | "audited", "item": InventoryItem | None}

        Raises:
            ValidationError: バーコード未指定、不明なアクション、CREATE時の商品情報欠落、INCREMENT の負数
            NotFoundError: INCREMENT / DECREMENT 対象が存在しない
            DuplicateBarcodeError: CREATE 時のバーコード重複
        """
        barcode = (barcode or "").strip()
        if not barcode:
            raise ValidationError("Barcode is required", field="barcode")

        action = (action or "").strip().upper()
        if action not in SCAN_ACTIONS:
            raise ValidationError(
                "Invalid action. Use CREATE, INCREMENT, DECREMENT, or AUDIT",
                field="action",
            )

        if action == "CREATE":
            if item_data is None:
                raise ValidationError("Item details are required to create an item", field="item")
            create = InventoryItemCreate(barcode=barcode, **item_data.model_dump())
            item = await self.create_item(create, actor_id, notes=notes)
            return {"action": "created", "item": item}

        if action == "AUDIT":
            existing = await self.get_item_by_barcode(barcode)
            await self.scan_logs.record(
                barcode,
                ScanAction.AUDITED,
                actor_id,
                inventory_item_id=existing.id if existing else None,
                notes=notes,
            )
            logger.info("Audit scan recorded", barcode=barcode, known_item=existing is not None)
            return {"action": "audited", "item": None}

        existing = await self.get_item_by_barcode(barcode)
        if not existing:
            raise NotFoundError("Item not found", barcode=barcode)

        if action == "INCREMENT":
            qty = quantity_change or 1
            if qty < 1:
                raise ValidationError("INCREMENT quantity_change must be positive", field="quantity_change")
            existing.quantity = existing.quantity + qty
            log_action, change, label = ScanAction.INCREMENTED, qty, "incremented"
        else:
            qty = abs(quantity_change or 1)
            existing.quantity = max(0, existing.quantity - qty)
            log_action, change, label = ScanAction.DECREMENTED, -qty, "decremented"

        await self.db.commit()
        await self.db.refresh(existing)

        await self.scan_logs.record(
            barcode,
            log_action,
            actor_id,
            inventory_item_id=existing.id,
            quantity_change=change,
            notes=notes,
        )
        await self.db.refresh(existing)

        if existing.is_low_stock:
            await self._send_stock_alert(existing)
        await self._send_inventory_update(existing, label)

        logger.info("Scan applied", barcode=barcode, action=label, change=change, quantity=existing.quantity)
        return {"action": label, "item": existing}

    async def get_low_stock_items(self) -> List[InventoryItem]:
        """Items at or below their reorder threshold (min_stock > 0 only)"""
        query = (
            select(InventoryItem)
            .where(and_(InventoryItem.min_stock > 0, InventoryItem.quantity <= InventoryItem.min_stock))
            .order_by(InventoryItem.quantity.asc(), InventoryItem.id.asc())
        )
        result = await self.db.execute(query)
        items = result.scalars().all()

        logger.info("Retrieved low stock inventory items", count=len(items))
        return items

    async def get_inventory_stats(self) -> dict:
        """
        ダッシュボード統計情報取得

        統計項目:
        - total_items: 総アイテム数
        - total_quantity: 総在庫数量
        - low_stock_count: 低在庫アイテム数
        - scans_today: 本日（UTC）のスキャンログ件数
        - recent_activity: 直近10件のスキャンログ
        """
        total_items = await self.db.scalar(select(func.count(InventoryItem.id)))
        total_quantity = await self.db.scalar(select(func.coalesce(func.sum(InventoryItem.quantity), 0)))
        low_stock_count = await self.db.scalar(
            select(func.count(InventoryItem.id)).where(
                and_(InventoryItem.min_stock > 0, InventoryItem.quantity <= InventoryItem.min_stock)
            )
        )

        start_of_day = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        scans_today = await self.db.scalar(
            select(func.count(ScanLog.id)).where(ScanLog.created_at >= start_of_day)
        )

        recent_query = (
            select(ScanLog)
            .options(selectinload(ScanLog.inventory_item))
            .order_by(ScanLog.created_at.desc(), ScanLog.id.desc())
            .limit(10)
        )
        recent = (await self.db.execute(recent_query)).scalars().all()

        stats = {
            "total_items": total_items or 0,
            "total_quantity": int(total_quantity or 0),
            "low_stock_count": low_stock_count or 0,
            "scans_today": scans_today or 0,
            "recent_activity": [
                {
                    "id": log.id,
                    "barcode": log.barcode,
                    "action": log.action,
                    "item_name": log.inventory_item.name if log.inventory_item else "Unknown",
                    "created_at": log.created_at,
                }
                for log in recent
            ],
        }

        logger.info("Retrieved inventory statistics",
                    total_items=stats["total_items"], low_stock_count=stats["low_stock_count"])
        return stats

    async def find_matching(self, item_filter: FilterSpec) -> List[InventoryItem]:
        """棚卸対象アイテムの抽出（id昇順）"""
        query = select(InventoryItem).where(item_filter.clause()).order_by(InventoryItem.id.asc())
        result = await self.db.execute(query)
        return result.scalars().all()

    async def apply_quantity(self, item_id: int, new_quantity: int) -> bool:
        """
        数量の上書き（コミットしない）

        棚卸照合の一括トランザクション内で使用されます。

        Returns:
            bool: 対象アイテムが存在し更新された場合True
        """
        if new_quantity < 0:
            raise ValidationError("Quantity cannot be negative", field="quantity")

        item = await self.get_item(item_id)
        if item is None:
            return False

        item.quantity = new_quantity
        await self.db.flush()
        return True

    @staticmethod
    def _item_payload(item: InventoryItem) -> dict:
        return {
            "id": item.id,
            "barcode": item.barcode,
            "name": item.name,
            "quantity": item.quantity,
            "location": item.location,
            "is_low_stock": item.is_low_stock,
        }

    async def _send_inventory_update(self, item: InventoryItem, action: str):
        """リアルタイム在庫更新通知送信（created / updated / incremented 等）"""
        await manager.send_inventory_update({"action": action, "item": self._item_payload(item)})

    async def _send_stock_alert(self, item: InventoryItem):
        """
        低在庫アラート送信

        アラートレベル:
        - critical: 在庫切れ（quantity <= 0）
        - warning: 発注点以下
        """
        alert_level = "critical" if item.quantity <= 0 else "warning"
        await manager.send_stock_alert({
            "item_id": item.id,
            "barcode": item.barcode,
            "name": item.name,
            "current_stock": item.quantity,
            "min_stock": item.min_stock,
            "alert_level": alert_level,
            "message": f"Stock level for {item.barcode} is {'out of stock' if item.quantity <= 0 else 'at or below reorder point'}"
        })
