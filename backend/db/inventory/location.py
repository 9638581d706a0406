import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, Uuid, text

from ..database import Base
from ..product import utcnow


class StockLocation(Base):
    __tablename__ = "stock_locations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_primary = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # At most one primary location per tenant
    __table_args__ = (
        Index(
            "ux_stock_locations_one_primary",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary"),
        ),
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_primary": bool(self.is_primary),
        }
