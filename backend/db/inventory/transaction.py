from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base
from ..product import utcnow

TRANSACTION_TYPES = ("entry", "exit", "adjustment", "transfer", "purchase", "sale", "count-adjustment")


class StockTransaction(Base):
    """Append-only ledger entry: one quantity change at one location."""
    __tablename__ = "stock_transactions"

    # Integer key doubles as the append order of the ledger
    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)

    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # No FK: entries outlive a deleted (empty) location
    warehouse_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    type = Column(String(30), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # signed: positive in, negative out
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)

    reason = Column(Text, nullable=True)
    reference = Column(Text, nullable=True)
    related_id = Column(String, nullable=True, index=True)

    created_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = relationship("Product")

    __table_args__ = (
        CheckConstraint(
            "type IN ('entry', 'exit', 'adjustment', 'transfer', 'purchase', 'sale', 'count-adjustment')",
            name="chk_stock_transaction_type",
        ),
        CheckConstraint("new_quantity = previous_quantity + quantity", name="chk_stock_transaction_arithmetic"),
        Index("ix_stock_transactions_product_location", "product_id", "warehouse_id", "id"),
    )

    def __repr__(self):
        return f"<StockTransaction {self.id}: {self.type} {self.quantity:+d} on product {self.product_id}>"

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "reference": self.reference,
            "related_id": self.related_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at,
        }
