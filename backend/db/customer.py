import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from .database import Base
from .product import utcnow


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    credit_limit = Column(Numeric(12, 2), nullable=False, default=0)
    credit_balance = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    @property
    def to_schema(self):
        limit = float(self.credit_limit or 0)
        balance = float(self.credit_balance or 0)
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "credit_limit": limit,
            "credit_balance": balance,
            "available_credit": max(0.0, limit - balance),
            "notes": self.notes,
        }


class CustomerCreditTransaction(Base):
    __tablename__ = "customer_credit_transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(20), nullable=False)  # credit_sale | payment | refund
    amount = Column(Numeric(12, 2), nullable=False)  # signed: positive raises the balance
    balance_after = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "type": self.type,
            "amount": float(self.amount or 0),
            "balance_after": float(self.balance_after or 0),
            "description": self.description,
            "created_at": self.created_at,
        }
