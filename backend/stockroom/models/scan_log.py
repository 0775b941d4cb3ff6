"""
Scan log database model
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockroom.core.database import Base


class ScanAction(str, enum.Enum):
    CREATED = "CREATED"
    INCREMENTED = "INCREMENTED"
    DECREMENTED = "DECREMENTED"
    AUDITED = "AUDITED"
    UPDATED = "UPDATED"


class ScanLog(Base):
    """Append-only history of inventory-affecting actions"""
    __tablename__ = "scan_logs"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    barcode = Column(String(128), nullable=False, index=True)
    action = Column(Enum(ScanAction, name="scan_action"), nullable=False)
    quantity_change = Column(Integer, nullable=True)  # signed
    notes = Column(Text)
    scanned_by = Column(String(100))  # actor id

    inventory_item_id = Column(
        Integer,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    inventory_item = relationship("InventoryItem", back_populates="scan_logs")

    def __repr__(self):
        return f"<ScanLog(id={self.id}, barcode='{self.barcode}', action={self.action}, change={self.quantity_change})>"
