import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DomainError, LocationInUseError, LocationNotFoundError
from db.inventory.location import StockLocation
from db.inventory.stock import ProductStock
from db.repository import StockRepository
from services.stock_ledger import ResyncReport, StockLedger

logger = logging.getLogger(__name__)


class LocationService:
    """
    Stock locations of one tenant.

    Exactly one location is primary once any exists; whenever the primary
    changes, Product.quantity is resynced from the new primary's rows in the
    same transaction.
    """

    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = StockRepository(db, tenant_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def list(self) -> List[StockLocation]:
        return await self.repo.list_locations()

    async def get(self, location_id: UUID) -> StockLocation:
        location = await self.repo.get_location(location_id)
        if location is None:
            raise LocationNotFoundError(f"Stock location {location_id} not found")
        return location

    async def _demote_all(self) -> None:
        await self.db.execute(
            update(StockLocation)
            .where(StockLocation.tenant_id == self.tenant_id, StockLocation.is_primary == True)  # noqa: E712
            .values(is_primary=False)
        )

    async def create(
        self, name: str, description: Optional[str] = None, is_primary: bool = False, *, _retry: bool = True
    ) -> StockLocation:
        name = (name or "").strip()
        if not name:
            raise DomainError("Location name is required")

        first = await self.repo.get_primary_location() is None
        make_primary = bool(is_primary) or first
        if make_primary and not first:
            await self._demote_all()

        location = StockLocation(
            tenant_id=self.tenant_id, name=name, description=description, is_primary=make_primary
        )
        self.db.add(location)
        try:
            await self.db.flush()
        except IntegrityError:
            # Another request claimed the primary slot after our read
            await self.db.rollback()
            if not (make_primary and _retry):
                raise
            logger.info("primary location of tenant %s changed concurrently; retrying", self.tenant_id)
            return await self.create(name, description, is_primary, _retry=False)

        if make_primary:
            await self.ledger.resync_primary_quantities()
        else:
            await self.db.commit()
        logger.info("created stock location %s (%s) primary=%s", location.id, name, make_primary)
        return await self.get(location.id)

    async def update(
        self, location_id: UUID, name: Optional[str] = None, description: Optional[str] = None
    ) -> StockLocation:
        location = await self.get(location_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise DomainError("Location name cannot be empty")
            location.name = name
        if description is not None:
            location.description = description
        await self.db.commit()
        return location

    async def set_primary(self, location_id: UUID) -> Tuple[StockLocation, ResyncReport]:
        location = await self.get(location_id)
        if location.is_primary:
            return location, ResyncReport()

        await self._demote_all()
        await self.db.execute(
            update(StockLocation).where(StockLocation.id == location_id).values(is_primary=True)
        )
        report = await self.ledger.resync_primary_quantities()
        logger.info(
            "primary location is now %s; %d product quantities corrected",
            location_id, report.corrected,
        )
        return await self.get(location_id), report

    async def delete(self, location_id: UUID) -> None:
        location = await self.get(location_id)
        if location.is_primary:
            raise LocationInUseError("The primary location cannot be deleted")
        rows = await self.repo.list_stock_for_location(location_id)
        stocked = [r for r in rows if int(r.quantity or 0) != 0]
        if stocked:
            raise LocationInUseError(
                f"Location '{location.name}' still holds stock for {len(stocked)} product(s)"
            )

        await self.db.execute(
            delete(ProductStock).where(
                ProductStock.tenant_id == self.tenant_id, ProductStock.location_id == location_id
            )
        )
        await self.db.delete(location)
        await self.db.commit()
        logger.info("deleted stock location %s", location_id)
