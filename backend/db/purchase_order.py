import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from .database import Base
from .product import utcnow


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    order_number = Column(String, nullable=False, index=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True)
    warehouse_id = Column(Uuid(as_uuid=True), ForeignKey("stock_locations.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending|partial|received|cancelled
    order_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    received_date = Column(DateTime(timezone=True), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False, default="cash")  # cash|credit|bank_check
    payment_status = Column(String(20), nullable=False, default="unpaid")  # unpaid|partial|paid
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    supplier = relationship("Supplier")
    items = relationship("PurchaseOrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "order_date": self.order_date,
            "received_date": self.received_date,
            "subtotal": float(self.subtotal or 0),
            "total": float(self.total or 0),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_amount": float(self.paid_amount or 0),
            "remaining_amount": float(self.remaining_amount or 0),
            "notes": self.notes,
            "items": [i.to_schema for i in self.items],
        }


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_cost = Column(Numeric(12, 2), nullable=False, default=0)
    # Guards against receiving the same line twice
    received_quantity = Column(Integer, nullable=False, default=0)

    order = relationship("PurchaseOrder", back_populates="items")
    product = relationship("Product")

    @property
    def remaining_quantity(self) -> int:
        return max(0, int(self.quantity or 0) - int(self.received_quantity or 0))

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost": float(self.unit_cost or 0),
            "total_cost": float(self.total_cost or 0),
            "received_quantity": int(self.received_quantity or 0),
            "remaining_quantity": self.remaining_quantity,
        }
