import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    barcode = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)
    selling_price = Column(Numeric(12, 2), nullable=False, default=0)

    # Mirror of the primary location's product_stock row; written only by StockLedger
    quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=True, default=10)
    unit = Column(String, nullable=True, default="piece")
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    stocks = relationship("ProductStock", back_populates="product", cascade="all, delete-orphan")

    @property
    def stock_status(self) -> str:
        qty = int(self.quantity or 0)
        if qty <= 0:
            return "out_of_stock"
        if qty <= int(self.min_stock_level if self.min_stock_level is not None else 10):
            return "low_stock"
        return "in_stock"

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "description": self.description,
            "category": self.category,
            "cost_price": float(self.cost_price or 0),
            "selling_price": float(self.selling_price or 0),
            "quantity": int(self.quantity or 0),
            "min_stock_level": self.min_stock_level,
            "unit": self.unit,
            "active": bool(self.active),
            "stock_status": self.stock_status,
        }
