import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from .database import Base
from .product import utcnow


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    invoice_number = Column(String, nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    location_id = Column(Uuid(as_uuid=True), ForeignKey("stock_locations.id", ondelete="SET NULL"), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False)
    change_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False, default="cash")  # cash|card|credit
    status = Column(String(20), nullable=False, default="completed")
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    customer = relationship("Customer")
    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "date": self.date,
            "customer_id": self.customer_id,
            "location_id": self.location_id,
            "subtotal": float(self.subtotal or 0),
            "discount_amount": float(self.discount_amount or 0),
            "tax_amount": float(self.tax_amount or 0),
            "total_amount": float(self.total_amount or 0),
            "paid_amount": float(self.paid_amount or 0),
            "change_amount": float(self.change_amount or 0),
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "items": [i.to_schema for i in self.items],
        }


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    returned_quantity = Column(Integer, nullable=False, default=0)

    sale = relationship("Sale", back_populates="items")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price or 0),
            "total_price": float(self.total_price or 0),
            "returned_quantity": int(self.returned_quantity or 0),
        }


class CustomerReturn(Base):
    __tablename__ = "customer_returns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    return_number = Column(String, nullable=False, index=True)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    refund_method = Column(String(20), nullable=False, default="cash")  # cash|credit
    refund_amount = Column(Numeric(12, 2), nullable=False, default=0)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    items = relationship("CustomerReturnItem", back_populates="customer_return", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "return_number": self.return_number,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "refund_method": self.refund_method,
            "refund_amount": float(self.refund_amount or 0),
            "reason": self.reason,
            "created_at": self.created_at,
            "items": [i.to_schema for i in self.items],
        }


class CustomerReturnItem(Base):
    __tablename__ = "customer_return_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    return_id = Column(Uuid(as_uuid=True), ForeignKey("customer_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = Column(Uuid(as_uuid=True), ForeignKey("sale_items.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    customer_return = relationship("CustomerReturn", back_populates="items")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "amount": float(self.amount or 0),
        }
