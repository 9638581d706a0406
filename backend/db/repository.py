"""
Tenant-scoped persistence adapter for the stock core.

Only `services.stock_ledger.StockLedger` writes product_stock rows,
Product.quantity and ledger entries through this class; routers and
workflows use the read helpers.
"""
import uuid
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .inventory.location import StockLocation
from .inventory.stock import ProductStock
from .inventory.transaction import StockTransaction
from .product import Product, utcnow


class StockRepository:
    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    # Products

    async def get_product(self, product_id: UUID, *, for_update: bool = False) -> Optional[Product]:
        stmt = select(Product).where(Product.id == product_id, Product.tenant_id == self.tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt)
        return res.scalar_one_or_none()

    async def list_active_products(self) -> List[Product]:
        res = await self.db.execute(
            select(Product)
            .where(Product.tenant_id == self.tenant_id, Product.active == True)  # noqa: E712
            .order_by(func.lower(Product.name).asc())
        )
        return list(res.scalars().all())

    async def list_products(self) -> List[Product]:
        res = await self.db.execute(
            select(Product).where(Product.tenant_id == self.tenant_id).order_by(func.lower(Product.name).asc())
        )
        return list(res.scalars().all())

    async def update_product_quantity(self, product_id: UUID, quantity: int) -> None:
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.tenant_id == self.tenant_id)
            .values(quantity=quantity, updated_at=utcnow())
        )

    # Locations

    async def get_location(self, location_id: UUID) -> Optional[StockLocation]:
        res = await self.db.execute(
            select(StockLocation).where(StockLocation.id == location_id, StockLocation.tenant_id == self.tenant_id)
        )
        return res.scalar_one_or_none()

    async def list_locations(self) -> List[StockLocation]:
        res = await self.db.execute(
            select(StockLocation)
            .where(StockLocation.tenant_id == self.tenant_id)
            .order_by(StockLocation.is_primary.desc(), func.lower(StockLocation.name).asc())
        )
        return list(res.scalars().all())

    async def get_primary_location(self) -> Optional[StockLocation]:
        res = await self.db.execute(
            select(StockLocation)
            .where(StockLocation.tenant_id == self.tenant_id, StockLocation.is_primary == True)  # noqa: E712
            .order_by(StockLocation.created_at.asc())
            .limit(1)
        )
        return res.scalar_one_or_none()

    # Product stock

    async def get_product_stock(
        self, product_id: UUID, location_id: UUID, *, for_update: bool = False
    ) -> Optional[ProductStock]:
        stmt = select(ProductStock).where(
            ProductStock.tenant_id == self.tenant_id,
            ProductStock.product_id == product_id,
            ProductStock.location_id == location_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt)
        return res.scalar_one_or_none()

    async def ensure_product_stock(self, product_id: UUID, location_id: UUID) -> ProductStock:
        """Return the locked row for (product, location), creating it with quantity 0 if missing."""
        existing = await self.get_product_stock(product_id, location_id, for_update=True)
        if existing is not None:
            return existing

        dialect = self._dialect_name()
        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            now = utcnow()
            stmt = (
                insert(ProductStock.__table__)
                .values(
                    id=uuid.uuid4(),
                    tenant_id=self.tenant_id,
                    product_id=product_id,
                    location_id=location_id,
                    quantity=0,
                    min_stock_level=0,
                    created_at=now,
                    updated_at=now,
                )
                # Deterministic conflict target: a concurrent creator wins, we lock its row below
                .on_conflict_do_nothing(index_elements=["tenant_id", "product_id", "location_id"])
            )
            await self.db.execute(stmt)
        else:
            self.db.add(
                ProductStock(
                    tenant_id=self.tenant_id,
                    product_id=product_id,
                    location_id=location_id,
                    quantity=0,
                    min_stock_level=0,
                )
            )
            await self.db.flush()

        row = await self.get_product_stock(product_id, location_id, for_update=True)
        if row is None:
            raise RuntimeError(f"product_stock row for {product_id}@{location_id} vanished after insert")
        return row

    async def upsert_product_stock(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        min_stock_level: Optional[int] = None,
    ) -> ProductStock:
        row = await self.ensure_product_stock(product_id, location_id)
        row.quantity = int(quantity)
        if min_stock_level is not None:
            row.min_stock_level = int(min_stock_level)
        row.updated_at = utcnow()
        await self.db.flush()
        return row

    async def list_stock_for_product(self, product_id: UUID) -> List[ProductStock]:
        res = await self.db.execute(
            select(ProductStock).where(
                ProductStock.tenant_id == self.tenant_id,
                ProductStock.product_id == product_id,
            )
        )
        return list(res.scalars().all())

    async def list_stock_for_location(self, location_id: UUID) -> List[ProductStock]:
        res = await self.db.execute(
            select(ProductStock).where(
                ProductStock.tenant_id == self.tenant_id,
                ProductStock.location_id == location_id,
            )
        )
        return list(res.scalars().all())

    # Ledger

    async def append_stock_transaction(
        self,
        *,
        product_id: UUID,
        location_id: UUID,
        type: str,
        previous_quantity: int,
        new_quantity: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> StockTransaction:
        txn = StockTransaction(
            tenant_id=self.tenant_id,
            product_id=product_id,
            warehouse_id=location_id,
            type=type,
            quantity=int(new_quantity) - int(previous_quantity),
            previous_quantity=int(previous_quantity),
            new_quantity=int(new_quantity),
            reason=reason,
            reference=reference,
            related_id=related_id,
            created_by_user_id=user_id,
        )
        self.db.add(txn)
        await self.db.flush()
        return txn

    async def list_transactions(
        self,
        *,
        product_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        type: Optional[str] = None,
        related_id: Optional[str] = None,
        limit: Optional[int] = 200,
        oldest_first: bool = False,
    ) -> List[StockTransaction]:
        stmt = select(StockTransaction).where(StockTransaction.tenant_id == self.tenant_id)
        if product_id is not None:
            stmt = stmt.where(StockTransaction.product_id == product_id)
        if location_id is not None:
            stmt = stmt.where(StockTransaction.warehouse_id == location_id)
        if type:
            stmt = stmt.where(StockTransaction.type == type)
        if related_id:
            stmt = stmt.where(StockTransaction.related_id == related_id)
        stmt = stmt.order_by(StockTransaction.id.asc() if oldest_first else StockTransaction.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())
