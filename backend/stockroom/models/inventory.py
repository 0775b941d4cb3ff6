"""
在庫管理データベースモデル

このファイルでは、在庫アイテム（InventoryItem）のデータベーススキーマを定義しています。
SQLAlchemyのORMを使用してテーブル構造、インデックス、制約を定義し、
ビジネスロジックプロパティも含んでいます。

データベース設計原則:
- バーコードによる一意識別
- 数量の非負制約（CHECK制約）
- ロケーション階層（zone / aisle / row / bin）
- タイムスタンプ自動管理

テーブル: inventory_items
主要用途:
- 商品情報管理
- 在庫数量追跡（スキャン・手動編集・棚卸照合で更新）
- ロケーション管理
- 発注点（min_stock）管理
- 外部会計システム（Sage Intacct）参照
"""
import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockroom.core.database import Base


class ItemCondition(str, enum.Enum):
    """商品状態"""
    NEW = "NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    DAMAGED = "DAMAGED"


LOCATION_FIELDS = ("zone", "aisle", "row", "bin")


class InventoryItem(Base):
    """
    在庫アイテムデータベースモデル

    在庫管理システムの中核となるテーブルモデルです。
    スキャン、手動編集、棚卸照合（サイクルカウント）の全てがこの数量を更新します。

    テーブル設計:
    - 主キー: id (自動インクリメント)
    - ユニークキー: barcode (作成後は変更不可)
    - インデックス: barcode, category, zone
    - 制約: quantity >= 0, min_stock >= 0

    計算フィールド:
    - location = zone / aisle / row / bin（空でない要素のみ結合）
    - is_low_stock = min_stock > 0 かつ quantity <= min_stock

    リレーション:
    - scan_logs: スキャン履歴（アイテム削除時にカスケード削除）
    - cycle_count_entries: 棚卸明細（参照のみ、削除時はNULL化）
    """
    __tablename__ = "inventory_items"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        CheckConstraint("min_stock >= 0", name="ck_inventory_items_min_stock_non_negative"),
    )

    # === 主キー・識別子 ===
    id = Column(
        Integer,
        primary_key=True,
        index=True,
        comment="在庫アイテムID - 主キー"
    )
    barcode = Column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
        comment="バーコード - ユニーク制約、作成後は変更不可"
    )

    # === 商品基本情報 ===
    name = Column(
        String(255),
        nullable=False,
        comment="商品名"
    )
    description = Column(
        Text,
        comment="商品説明（オプション）"
    )
    category = Column(
        String(100),
        index=True,
        comment="カテゴリ - 棚卸フィルタ対象"
    )
    unit = Column(
        String(50),
        comment="単位（each, box 等）"
    )
    condition = Column(
        Enum(ItemCondition, name="item_condition"),
        nullable=False,
        default=ItemCondition.GOOD,
        comment="商品状態 - NEW/GOOD/FAIR/POOR/DAMAGED"
    )

    # === 在庫数量情報 ===
    quantity = Column(
        Integer,
        nullable=False,
        default=0,
        comment="実在庫数 - 権威ある手持ち数量"
    )
    min_stock = Column(
        Integer,
        nullable=False,
        default=0,
        comment="発注点 - 0の場合は低在庫判定対象外"
    )
    cost_price = Column(
        Float,
        comment="原価（オプション）"
    )

    # === ロケーション ===
    zone = Column(String(100), index=True, comment="ゾーン")
    aisle = Column(String(100), comment="通路")
    row = Column(String(100), comment="列")
    bin = Column(String(100), comment="棚番")

    # === 外部連携 ===
    sage_item_id = Column(
        String(128),
        comment="Sage Intacct ITEMID - 初回同期時に設定"
    )

    # === 監査 ===
    created_by = Column(
        String(100),
        comment="作成者（アクターID）"
    )
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        comment="作成日時"
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        comment="更新日時"
    )

    scan_logs = relationship(
        "ScanLog",
        back_populates="inventory_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<InventoryItem(id={self.id}, barcode='{self.barcode}', quantity={self.quantity})>"

    @property
    def location(self) -> str:
        """
        ロケーション文字列プロパティ

        Returns:
            str: "Zone A / A-1 / R-3 / B-12" 形式（未設定の要素は省略）
        """
        return " / ".join(
            value for value in (getattr(self, field) for field in LOCATION_FIELDS) if value
        )

    @property
    def is_low_stock(self) -> bool:
        """発注点以下かどうか（min_stock = 0 は対象外）"""
        return self.min_stock > 0 and self.quantity <= self.min_stock
