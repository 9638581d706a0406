import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from .database import Base
from .product import utcnow


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    contact = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    # Amount currently owed to the supplier
    balance = Column(Numeric(12, 2), nullable=False, default=0)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
            "balance": float(self.balance or 0),
        }


class SupplierPayment(Base):
    __tablename__ = "supplier_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_orders.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, nullable=False, default="cash")
    reference = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "order_id": self.order_id,
            "amount": float(self.amount or 0),
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "payment_date": self.payment_date,
        }


class SupplierReturn(Base):
    __tablename__ = "supplier_returns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    return_number = Column(String, nullable=False, index=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Uuid(as_uuid=True), ForeignKey("stock_locations.id", ondelete="SET NULL"), nullable=True)
    reason = Column(Text, nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    supplier = relationship("Supplier")
    items = relationship("SupplierReturnItem", back_populates="supplier_return", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "return_number": self.return_number,
            "supplier_id": self.supplier_id,
            "location_id": self.location_id,
            "reason": self.reason,
            "total_amount": float(self.total_amount or 0),
            "created_at": self.created_at,
        }


class SupplierReturnItem(Base):
    __tablename__ = "supplier_return_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    return_id = Column(Uuid(as_uuid=True), ForeignKey("supplier_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=False, default=0)

    supplier_return = relationship("SupplierReturn", back_populates="items")
