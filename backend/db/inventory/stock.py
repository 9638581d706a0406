import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..database import Base
from ..product import utcnow


class ProductStock(Base):
    __tablename__ = "product_stock"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)

    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("stock_locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="stocks")
    location = relationship("StockLocation")

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", "location_id", name="ux_product_stock_tenant_product_location"),
    )

    @property
    def to_schema(self):
        return {
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": int(self.quantity or 0),
            "min_stock_level": int(self.min_stock_level or 0),
            "updated_at": self.updated_at,
        }
