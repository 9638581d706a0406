"""
Physical inventory counts.

A count snapshots the expected quantity of every active product at one
location, collects actual quantities while `in_progress`, and on completion
turns each non-zero variance into a `count-adjustment` ledger entry.

Completion is resumable: an item is flagged `reconciled` in the same
transaction as its stock change, so when some items fail the count stays
`in_progress` and the next `complete` call only retries what is left.
"""
import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from core.errors import (
    AlreadyAppliedError,
    CountNotFoundError,
    DomainError,
    IncompleteCountError,
    InvalidCountStateError,
    InvalidQuantityError,
    LocationNotFoundError,
    NotFoundError,
)
from db.inventory.count import InventoryCount, InventoryCountItem
from db.product import utcnow
from db.repository import StockRepository
from services.results import WorkflowResult
from services.stock_ledger import StockLedger
from services.stock_store import StockStore

logger = logging.getLogger(__name__)


class InventoryCountService:
    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.repo = StockRepository(db, tenant_id)
        self.store = StockStore(db, tenant_id, user_id=user_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def get(self, count_id: UUID) -> InventoryCount:
        res = await self.db.execute(
            select(InventoryCount)
            .where(InventoryCount.id == count_id, InventoryCount.tenant_id == self.tenant_id)
            .options(selectinload(InventoryCount.items))
            # Items may have been expired by a rolled back reconciliation
            .execution_options(populate_existing=True)
        )
        count = res.scalar_one_or_none()
        if count is None:
            raise CountNotFoundError(f"Inventory count {count_id} not found")
        return count

    async def list_counts(self, status: Optional[str] = None) -> List[InventoryCount]:
        stmt = (
            select(InventoryCount)
            .where(InventoryCount.tenant_id == self.tenant_id)
            .options(selectinload(InventoryCount.items))
            .order_by(InventoryCount.start_date.desc())
        )
        if status:
            stmt = stmt.where(InventoryCount.status == status)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def create(self, name: str, location_id: UUID, description: Optional[str] = None) -> InventoryCount:
        if await self.repo.get_location(location_id) is None:
            raise LocationNotFoundError(f"Stock location {location_id} not found")

        count = InventoryCount(
            tenant_id=self.tenant_id,
            name=name,
            description=description,
            location_id=location_id,
            status="draft",
            created_by_user_id=self.user_id,
        )
        self.db.add(count)
        await self.db.flush()

        products = await self.repo.list_active_products()
        for product in products:
            self.db.add(
                InventoryCountItem(
                    count_id=count.id,
                    product_id=product.id,
                    product_name=product.name,
                    expected_quantity=await self.store.get_quantity(product.id, location_id),
                )
            )
        await self.db.commit()
        logger.info("created inventory count %s (%s) with %d items", count.id, name, len(products))
        return await self.get(count.id)

    async def start(self, count_id: UUID) -> InventoryCount:
        count = await self.get(count_id)
        if count.status == "cancelled":
            raise InvalidCountStateError("A cancelled count cannot be started")
        if count.status != "draft":
            return count
        count.status = "in_progress"
        await self.db.commit()
        return await self.get(count_id)

    async def cancel(self, count_id: UUID) -> InventoryCount:
        count = await self.get(count_id)
        if count.status not in ("draft", "in_progress"):
            raise InvalidCountStateError(f"Cannot cancel a count in status '{count.status}'")
        count.status = "cancelled"
        count.end_date = utcnow()
        await self.db.commit()
        logger.info("cancelled inventory count %s", count_id)
        return await self.get(count_id)

    async def record_actual(
        self, count_id: UUID, item_id: UUID, actual_quantity: int, notes: Optional[str] = None
    ) -> InventoryCountItem:
        count = await self.get(count_id)
        if count.status != "in_progress":
            raise InvalidCountStateError("Actual quantities can only be recorded while the count is in progress")
        if actual_quantity is None or int(actual_quantity) < 0:
            raise InvalidQuantityError(f"actual quantity must be >= 0 (got {actual_quantity})")

        item = next((i for i in count.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Count item {item_id} not found")
        if item.reconciled:
            raise InvalidCountStateError("This item has already been applied to stock")

        item.actual_quantity = int(actual_quantity)
        item.variance = item.actual_quantity - int(item.expected_quantity)
        if notes is not None:
            item.notes = notes
        await self.db.commit()
        return item

    async def progress(self, count_id: UUID) -> Dict[str, int]:
        count = await self.get(count_id)
        return {
            "total": len(count.items),
            "counted": count.counted_items,
            "percent": count.progress_percent,
        }

    async def complete(self, count_id: UUID) -> WorkflowResult:
        count = await self.get(count_id)
        if count.status != "in_progress":
            raise InvalidCountStateError(f"Cannot complete a count in status '{count.status}'")
        if settings.require_full_count_coverage and count.progress_percent < 100:
            raise IncompleteCountError(
                f"Count is only {count.progress_percent}% complete; every item must be counted"
            )

        # Uncounted items are taken as matching the snapshot
        for item in count.items:
            if item.actual_quantity is None:
                item.actual_quantity = int(item.expected_quantity)
                item.variance = 0

        result = WorkflowResult()
        pending = []
        for item in count.items:
            if item.reconciled:
                continue
            if not item.variance:
                item.reconciled = True
                result.skipped += 1
            else:
                pending.append((item.id, item.product_id, int(item.variance)))
        await self.db.commit()

        # Plain values only from here: a failed item rolls back and expires the ORM objects
        location_id = count.location_id
        reference = f"Inventory count: {count.name}"
        for item_id, product_id, variance in pending:

            async def _mark_reconciled(applied, item_id=item_id):
                res = await self.db.execute(
                    update(InventoryCountItem)
                    .where(InventoryCountItem.id == item_id, InventoryCountItem.reconciled == False)  # noqa: E712
                    .values(reconciled=True)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    raise AlreadyAppliedError(f"Count item {item_id} was already reconciled")

            try:
                await self.ledger.count_reconcile(
                    product_id,
                    location_id,
                    variance,
                    reference=reference,
                    related_id=str(count_id),
                    before_commit=_mark_reconciled,
                )
                result.succeeded += 1
            except AlreadyAppliedError:
                result.skipped += 1
            except DomainError as e:
                logger.warning("count %s item %s not reconciled: %s", count_id, item_id, e.message)
                result.add_failure(item_id, product_id, e)
            except Exception as e:
                logger.exception("unexpected error reconciling count %s item %s", count_id, item_id)
                result.add_failure(item_id, product_id, e)

        if result.ok:
            await self.db.execute(
                update(InventoryCount)
                .where(InventoryCount.id == count_id, InventoryCount.status == "in_progress")
                .values(status="completed", end_date=utcnow())
            )
            await self.db.commit()
            logger.info(
                "completed inventory count %s: %d adjusted, %d unchanged",
                count_id, result.succeeded, result.skipped,
            )
        else:
            logger.warning(
                "inventory count %s left in progress: %d of %d adjustments failed",
                count_id, result.failed, len(pending),
            )
        return result
