"""
サイクルカウント（循環棚卸）データベースモデル

棚卸セッション（CycleCount）と、その明細（CycleCountEntry）を定義します。

ライフサイクル:
    NOT_STARTED → IN_PROGRESS → COUNTED → RECONCILED
    NOT_STARTED / IN_PROGRESS / COUNTED → VOIDED
    RECONCILED, VOIDED は終端状態

所有関係:
- CycleCount は CycleCountEntry を排他的に所有（セッション削除でカスケード削除）
- CycleCountEntry は InventoryItem を参照のみ（アイテム削除時は参照をNULL化し、
  バーコード・商品名のスナップショットで履歴を保持）
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockroom.core.database import Base


class CycleCountStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COUNTED = "COUNTED"
    RECONCILED = "RECONCILED"
    VOIDED = "VOIDED"


class EntryStatus(str, enum.Enum):
    PENDING = "PENDING"
    COUNTED = "COUNTED"
    SKIPPED = "SKIPPED"


class FilterType(str, enum.Enum):
    ZONE = "zone"
    AISLE = "aisle"
    ROW = "row"
    BIN = "bin"
    CATEGORY = "category"
    ALL = "all"


# 状態遷移表（現在の状態 → 遷移可能な状態）
ALLOWED_TRANSITIONS = {
    CycleCountStatus.NOT_STARTED: frozenset({CycleCountStatus.IN_PROGRESS, CycleCountStatus.VOIDED}),
    CycleCountStatus.IN_PROGRESS: frozenset({CycleCountStatus.COUNTED, CycleCountStatus.VOIDED}),
    CycleCountStatus.COUNTED: frozenset({CycleCountStatus.RECONCILED, CycleCountStatus.VOIDED}),
    CycleCountStatus.RECONCILED: frozenset(),
    CycleCountStatus.VOIDED: frozenset(),
}

# 明細の記録（カウント・スキップ）を受け付ける状態
OPEN_STATUSES = frozenset({CycleCountStatus.NOT_STARTED, CycleCountStatus.IN_PROGRESS})

# 削除可能な状態（カウント開始後の監査証跡は保護する）
DELETABLE_STATUSES = frozenset({CycleCountStatus.NOT_STARTED, CycleCountStatus.VOIDED})


class CycleCount(Base):
    """
    棚卸セッションモデル

    作成時点でフィルタに一致した在庫アイテムのスナップショットを保持する
    時点監査の単位です。
    """
    __tablename__ = "cycle_counts"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, comment="セッション名")
    filter_type = Column(
        Enum(FilterType, name="cycle_count_filter_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=FilterType.ALL,
        comment="対象フィルタ種別"
    )
    filter_value = Column(String(100), comment="フィルタ値（all の場合はNULL）")
    notes = Column(Text)
    status = Column(
        Enum(CycleCountStatus, name="cycle_count_status"),
        nullable=False,
        default=CycleCountStatus.NOT_STARTED,
        index=True,
    )

    created_by = Column(String(100), comment="作成者（アクターID）")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    started_at = Column(DateTime(timezone=True), comment="最初のカウント記録時に設定")
    completed_at = Column(DateTime(timezone=True), comment="COUNTED / RECONCILED 遷移時に設定")

    entries = relationship(
        "CycleCountEntry",
        back_populates="cycle_count",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CycleCountEntry.id",
    )

    def __repr__(self):
        return f"<CycleCount(id={self.id}, name='{self.name}', status={self.status})>"

    def can_transition_to(self, target: CycleCountStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[CycleCountStatus(self.status)]

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_deletable(self) -> bool:
        return self.status in DELETABLE_STATUSES


class CycleCountEntry(Base):
    """
    棚卸明細モデル

    1セッション内の1アイテムについて、期待数量（作成時スナップショット）と
    実数量を記録します。

    不変条件:
    - expected_qty は作成後に変更されない
    - status = COUNTED の場合 variance == counted_qty - expected_qty
    - counted_qty は負にならない
    """
    __tablename__ = "cycle_count_entries"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("cycle_count_id", "inventory_item_id", name="uq_cycle_count_entry_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cycle_count_id = Column(
        Integer,
        ForeignKey("cycle_counts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    inventory_item_id = Column(
        Integer,
        ForeignKey("inventory_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # アイテム削除後も履歴を読めるようにするためのスナップショット
    item_barcode = Column(String(128), nullable=False)
    item_name = Column(String(255), nullable=False)

    expected_qty = Column(Integer, nullable=False, comment="期待数量 - 作成時スナップショット")
    counted_qty = Column(Integer, comment="実数量 - カウント前はNULL")
    variance = Column(Integer, comment="差異 = counted_qty - expected_qty")
    status = Column(
        Enum(EntryStatus, name="cycle_count_entry_status"),
        nullable=False,
        default=EntryStatus.PENDING,
        index=True,
    )
    adjustment_reason = Column(Text)
    counted_by = Column(String(100))
    counted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cycle_count = relationship("CycleCount", back_populates="entries")
    inventory_item = relationship("InventoryItem")

    def __repr__(self):
        return (
            f"<CycleCountEntry(id={self.id}, cycle_count_id={self.cycle_count_id}, "
            f"expected={self.expected_qty}, counted={self.counted_qty}, status={self.status})>"
        )

    @property
    def has_variance(self) -> bool:
        return self.status == EntryStatus.COUNTED and bool(self.variance)
