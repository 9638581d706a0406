import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base
from ..product import utcnow

COUNT_STATUSES = ("draft", "in_progress", "completed", "cancelled")


class InventoryCount(Base):
    __tablename__ = "inventory_counts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("stock_locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(20), nullable=False, default="draft", index=True)

    start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    items = relationship(
        "InventoryCountItem",
        back_populates="count",
        cascade="all, delete-orphan",
        order_by="InventoryCountItem.product_name",
    )

    @property
    def counted_items(self) -> int:
        return sum(1 for i in self.items if i.actual_quantity is not None)

    @property
    def progress_percent(self) -> int:
        total = len(self.items)
        return round(self.counted_items / total * 100) if total else 0

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location_id": self.location_id,
            "status": self.status,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "total_items": len(self.items),
            "counted_items": self.counted_items,
            "progress_percent": self.progress_percent,
            "items": [i.to_schema for i in self.items],
        }


class InventoryCountItem(Base):
    __tablename__ = "inventory_count_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    count_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_counts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_name = Column(String, nullable=True)

    expected_quantity = Column(Integer, nullable=False)
    actual_quantity = Column(Integer, nullable=True)
    variance = Column(Integer, nullable=True)
    # Set once the variance has been applied to stock (or found to be zero)
    reconciled = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    count = relationship("InventoryCount", back_populates="items")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "count_id": self.count_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "expected_quantity": self.expected_quantity,
            "actual_quantity": self.actual_quantity,
            "variance": self.variance,
            "reconciled": bool(self.reconciled),
            "notes": self.notes,
        }
