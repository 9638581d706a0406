import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import InvalidQuantityError, ProductNotFoundError
from db.product import Product
from db.repository import StockRepository
from services.stock_ledger import StockLedger
from services.stock_store import StockStore

logger = logging.getLogger(__name__)

# Catalog fields a client may change; quantity is owned by the ledger
EDITABLE_FIELDS = (
    "name",
    "barcode",
    "description",
    "category",
    "cost_price",
    "selling_price",
    "min_stock_level",
    "unit",
    "active",
)


class ProductService:
    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = StockRepository(db, tenant_id)
        self.store = StockStore(db, tenant_id, user_id=user_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def get(self, product_id: UUID) -> Product:
        product = await self.repo.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    async def list(
        self,
        search: Optional[str] = None,
        low_stock: bool = False,
        include_inactive: bool = False,
    ) -> List[Product]:
        stmt = select(Product).where(Product.tenant_id == self.tenant_id)
        if not include_inactive:
            stmt = stmt.where(Product.active == True)  # noqa: E712
        if search:
            like = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(func.lower(Product.name).like(like), func.lower(func.coalesce(Product.barcode, "")).like(like))
            )
        res = await self.db.execute(stmt.order_by(func.lower(Product.name).asc()))
        products = list(res.scalars().all())
        if low_stock:
            products = [p for p in products if p.stock_status != "in_stock"]
        return products

    async def create(self, data: Dict[str, Any], initial_quantity: int = 0) -> Product:
        initial_quantity = int(initial_quantity or 0)
        if initial_quantity < 0:
            raise InvalidQuantityError(f"initial quantity must be >= 0 (got {initial_quantity})")
        if initial_quantity > 0:
            # Fail before the product exists rather than leaving it without its stock
            await self.ledger.resolve_location(None)

        values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
        values.setdefault("min_stock_level", settings.default_min_stock_level)
        product = Product(tenant_id=self.tenant_id, quantity=0, **values)
        self.db.add(product)
        await self.db.commit()
        logger.info("created product %s (%s)", product.id, product.name)

        if initial_quantity > 0:
            primary = await self.ledger.resolve_location(None)
            await self.ledger.entry(product.id, primary.id, initial_quantity, reason="Initial stock")
        return await self.get(product.id)

    async def update(self, product_id: UUID, data: Dict[str, Any]) -> Product:
        product = await self.get(product_id)
        for key, value in data.items():
            if key in EDITABLE_FIELDS:
                setattr(product, key, value)
        await self.db.commit()
        return product

    async def deactivate(self, product_id: UUID) -> Product:
        product = await self.get(product_id)
        product.active = False
        await self.db.commit()
        logger.info("deactivated product %s", product_id)
        return product

    async def stock_overview(self, product_id: UUID) -> Dict[str, Any]:
        product = await self.get(product_id)
        rows = await self.store.list_for_product(product_id)
        names = {loc.id: loc.name for loc in await self.repo.list_locations()}
        return {
            "product": product.to_schema,
            "locations": [
                {**r.to_schema, "location_name": names.get(r.location_id)}
                for r in sorted(rows, key=lambda r: names.get(r.location_id) or "")
            ],
            "total": await self.store.get_total_across_locations(product_id),
        }
