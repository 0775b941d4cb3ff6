"""
スキャンログ（監査証跡）サービス

在庫に影響する全操作（作成・増減・監査・更新・棚卸照合）を追記専用で記録します。

書き込みモード:
- append(): 呼び出し元のトランザクションに参加（棚卸照合の一括コミット用）
- record(): 独立してコミット。失敗しても既にコミット済みの数量更新は妨げない
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import List, Optional
import structlog

from stockroom.core.config import settings
from stockroom.models.scan_log import ScanLog, ScanAction

logger = structlog.get_logger(__name__)


class ScanLogService:
    """Append-only scan log access"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        barcode: str,
        action: ScanAction,
        actor_id: Optional[str],
        inventory_item_id: Optional[int] = None,
        quantity_change: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ScanLog:
        """Add a log row to the current transaction without committing"""
        log = ScanLog(
            barcode=barcode,
            action=action,
            quantity_change=quantity_change,
            notes=notes or None,
            scanned_by=actor_id,
            inventory_item_id=inventory_item_id,
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def record(
        self,
        barcode: str,
        action: ScanAction,
        actor_id: Optional[str],
        inventory_item_id: Optional[int] = None,
        quantity_change: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Optional[ScanLog]:
        """
        ログ行を追記して独立コミット

        ログの書き込み失敗はエラーログのみ記録し、呼び出し元には伝播しません
        （数量更新は既にコミット済みのため）。

        Returns:
            Optional[ScanLog]: 追記されたログ（失敗時None）
        """
        try:
            log = await self.append(
                barcode,
                action,
                actor_id,
                inventory_item_id=inventory_item_id,
                quantity_change=quantity_change,
                notes=notes,
            )
            await self.db.commit()
            return log
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to append scan log", barcode=barcode, action=action.value, error=str(e))
            return None

    async def list_logs(self, barcode: Optional[str] = None, limit: Optional[int] = None) -> List[ScanLog]:
        """Newest first, optionally for a single barcode; limit is capped"""
        if limit is None:
            limit = settings.SCAN_LOG_DEFAULT_LIMIT
        limit = max(1, min(limit, settings.SCAN_LOG_MAX_LIMIT))

        query = (
            select(ScanLog)
            .options(selectinload(ScanLog.inventory_item))
            .order_by(ScanLog.created_at.desc(), ScanLog.id.desc())
            .limit(limit)
        )
        if barcode:
            query = query.where(ScanLog.barcode == barcode)

        result = await self.db.execute(query)
        logs = result.scalars().all()

        logger.info("Retrieved scan logs", count=len(logs), barcode=barcode, limit=limit)
        return logs
