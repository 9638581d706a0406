import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InvalidQuantityError, LocationNotFoundError, ProductNotFoundError
from db.inventory.stock import ProductStock
from db.product import utcnow
from db.repository import StockRepository
from services.locks import stock_locks
from services.stock_ledger import StockLedger, TransferResult

logger = logging.getLogger(__name__)


class StockStore:
    """
    Per-location stock rows for one tenant.

    Reads come straight from product_stock. Quantity writes are delegated to
    `StockLedger` so each one leaves a ledger entry; the only direct write is
    the low-stock threshold.
    """

    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = StockRepository(db, tenant_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def get_quantity(self, product_id: UUID, location_id: UUID) -> int:
        row = await self.repo.get_product_stock(product_id, location_id)
        return int(row.quantity) if row is not None else 0

    async def get_row(self, product_id: UUID, location_id: UUID) -> Optional[ProductStock]:
        return await self.repo.get_product_stock(product_id, location_id)

    async def list_for_product(self, product_id: UUID) -> List[ProductStock]:
        return await self.repo.list_stock_for_product(product_id)

    async def list_for_location(self, location_id: UUID) -> List[ProductStock]:
        return await self.repo.list_stock_for_location(location_id)

    async def get_total_across_locations(self, product_id: UUID) -> int:
        rows = await self.repo.list_stock_for_product(product_id)
        if rows:
            return sum(int(r.quantity or 0) for r in rows)
        product = await self.repo.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return int(product.quantity or 0)

    async def add_stock(self, product_id: UUID, location_id: UUID, delta: int) -> ProductStock:
        return await self.ledger.add_stock(product_id, location_id, delta)

    async def remove_stock(self, product_id: UUID, location_id: UUID, delta: int) -> ProductStock:
        return await self.ledger.remove_stock(product_id, location_id, delta)

    async def transfer_stock(
        self, product_id: UUID, from_location_id: UUID, to_location_id: UUID, quantity: int
    ) -> TransferResult:
        return await self.ledger.transfer_stock(product_id, from_location_id, to_location_id, quantity)

    async def set_min_stock_level(self, product_id: UUID, location_id: UUID, min_stock_level: int) -> ProductStock:
        if min_stock_level is None or int(min_stock_level) < 0:
            raise InvalidQuantityError(f"min_stock_level must be >= 0 (got {min_stock_level})")
        if await self.repo.get_product(product_id) is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        if await self.repo.get_location(location_id) is None:
            raise LocationNotFoundError(f"Stock location {location_id} not found")

        async with stock_locks.hold(self.tenant_id, [(product_id, location_id)]):
            try:
                row = await self.repo.ensure_product_stock(product_id, location_id)
                row.min_stock_level = int(min_stock_level)
                row.updated_at = utcnow()
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        return row

    async def low_stock(self, location_id: Optional[UUID] = None) -> List[ProductStock]:
        stmt = select(ProductStock).where(
            ProductStock.tenant_id == self.tenant_id,
            and_(ProductStock.min_stock_level > 0, ProductStock.quantity <= ProductStock.min_stock_level),
        )
        if location_id is not None:
            stmt = stmt.where(ProductStock.location_id == location_id)
        res = await self.db.execute(stmt.order_by(ProductStock.quantity.asc()))
        return list(res.scalars().all())
