import asyncio
import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from core.errors import DomainError, LocationInUseError, LocationNotFoundError
from db.inventory.location import StockLocation
from services.locations import LocationService
from services.stock_ledger import StockLedger
from tests.conftest import TENANT


class TestLocations:
    @pytest.mark.asyncio
    async def test_first_location_is_primary(self, db):
        service = LocationService(db, TENANT)
        first = await service.create("Main Store")
        second = await service.create("Warehouse")
        assert first.is_primary is True
        assert second.is_primary is False

    @pytest.mark.asyncio
    async def test_name_is_required(self, db):
        with pytest.raises(DomainError):
            await LocationService(db, TENANT).create("   ")

    @pytest.mark.asyncio
    async def test_update(self, db, primary):
        service = LocationService(db, TENANT)
        updated = await service.update(primary.id, name=" Front shop ", description="Street level")
        assert (updated.name, updated.description) == ("Front shop", "Street level")
        with pytest.raises(DomainError):
            await service.update(primary.id, name="")
        with pytest.raises(LocationNotFoundError):
            await service.update(uuid.uuid4(), name="Nowhere")

    @pytest.mark.asyncio
    async def test_set_primary_resyncs_product_quantity(self, db, primary, warehouse, make_product, product_quantity):
        product = await make_product(quantity=5)
        await StockLedger(db, TENANT).entry(product.id, warehouse.id, 8)
        service = LocationService(db, TENANT)

        location, report = await service.set_primary(warehouse.id)

        assert location.is_primary is True
        assert report.corrected == 1
        assert await product_quantity(product.id) == 8
        assert [loc.id for loc in await service.list()][0] == warehouse.id
        assert (await service.get(primary.id)).is_primary is False

        # Already primary: nothing to do
        _, report = await service.set_primary(warehouse.id)
        assert report.as_dict() == {"created": 0, "corrected": 0, "unchanged": 0}

    @pytest.mark.asyncio
    async def test_new_primary_location_takes_over(self, db, primary, make_product, product_quantity):
        product = await make_product(quantity=5)
        service = LocationService(db, TENANT)

        outlet = await service.create("Outlet", is_primary=True)

        assert outlet.is_primary is True
        assert (await service.get(primary.id)).is_primary is False
        # The new primary holds nothing yet
        assert await product_quantity(product.id) == 0

    @pytest.mark.asyncio
    async def test_primary_cannot_be_deleted(self, db, primary):
        with pytest.raises(LocationInUseError):
            await LocationService(db, TENANT).delete(primary.id)

    @pytest.mark.asyncio
    async def test_stocked_location_cannot_be_deleted(self, db, primary, warehouse, make_product):
        product = await make_product(quantity=0)
        await StockLedger(db, TENANT).entry(product.id, warehouse.id, 2)
        with pytest.raises(LocationInUseError) as exc:
            await LocationService(db, TENANT).delete(warehouse.id)
        assert exc.value.code == "location_in_use"

    @pytest.mark.asyncio
    async def test_empty_location_is_deleted_and_history_kept(self, db, primary, warehouse, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=0)
        ledger = StockLedger(db, TENANT)
        await ledger.entry(product.id, warehouse.id, 3)
        await ledger.exit(product.id, warehouse.id, 3)
        service = LocationService(db, TENANT)

        await service.delete(warehouse.id)

        with pytest.raises(LocationNotFoundError):
            await service.get(warehouse.id)
        assert await stock_of(product.id, warehouse.id) is None
        assert len(await ledger_entries(product.id, warehouse.id)) == 2

    @pytest.mark.asyncio
    async def test_second_primary_row_is_rejected(self, db, primary):
        db.add(StockLocation(tenant_id=TENANT, name="Rogue", is_primary=True))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

        # Each tenant still gets its own primary
        elsewhere = await LocationService(db, "other-tenant").create("Elsewhere")
        assert elsewhere.is_primary is True

    @pytest.mark.asyncio
    async def test_concurrent_first_locations_leave_one_primary(self, db, session_maker):
        async def _create(name):
            async with session_maker() as session:
                location = await LocationService(session, TENANT).create(name)
                return location.is_primary

        flags = await asyncio.gather(_create("Front"), _create("Back"))

        assert sorted(flags) == [False, True]
        locations = await LocationService(db, TENANT).list()
        assert len(locations) == 2
        assert len([loc for loc in locations if loc.is_primary]) == 1
