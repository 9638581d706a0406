"""
Stock mutation operations.

Every change to a location's quantity goes through `StockLedger`, which keeps
three things consistent inside one database transaction:

- the product_stock row for (product, location),
- Product.quantity when the location is the primary one,
- an appended StockTransaction with previous/new quantities.

The same (tenant, product, location) keys are serialized with
`services.locks.stock_locks` plus `FOR UPDATE` row locks where the dialect
has them. Any error rolls the whole operation back.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    LocationNotFoundError,
    NegativeStockError,
    NotFoundError,
    PrimaryLocationRequiredError,
    ProductNotFoundError,
    SameLocationTransferError,
    StockError,
)
from db.inventory.location import StockLocation
from db.inventory.stock import ProductStock
from db.inventory.transaction import StockTransaction
from db.product import utcnow
from db.repository import StockRepository
from services.locks import stock_locks

logger = logging.getLogger(__name__)


@dataclass
class StockChange:
    """One requested quantity change at one (product, location)."""
    product_id: UUID
    location_id: UUID
    type: str
    rule: Callable[[int], int]  # previous quantity -> new quantity
    reason: Optional[str] = None
    reference: Optional[str] = None
    related_id: Optional[str] = None
    negative_error: Type[NegativeStockError] = NegativeStockError
    skip_if_unchanged: bool = False


@dataclass
class AppliedChange:
    transaction: StockTransaction
    stock: ProductStock
    product_name: str = ""
    location_name: str = ""

    @property
    def previous_quantity(self) -> int:
        return int(self.transaction.previous_quantity)

    @property
    def new_quantity(self) -> int:
        return int(self.transaction.new_quantity)

    @property
    def to_schema(self):
        return {
            "transaction": self.transaction.to_schema,
            "stock": self.stock.to_schema,
        }


@dataclass
class TransferOutcome:
    source: AppliedChange
    destination: AppliedChange
    related_id: str


@dataclass
class TransferResult:
    success: bool
    message: str
    outcome: Optional[TransferOutcome] = None


@dataclass
class ResyncReport:
    created: int = 0
    corrected: int = 0
    unchanged: int = 0
    corrected_product_ids: List[UUID] = field(default_factory=list)

    def as_dict(self) -> Dict[str, int]:
        return {"created": self.created, "corrected": self.corrected, "unchanged": self.unchanged}


BeforeCommit = Callable[[List[AppliedChange]], Awaitable[None]]


def _require_positive(amount: int, what: str) -> int:
    if amount is None or int(amount) <= 0:
        raise InvalidQuantityError(f"{what} must be > 0 (got {amount})")
    return int(amount)


class StockLedger:
    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.repo = StockRepository(db, tenant_id)

    # Core algorithm

    async def _require_primary(self) -> StockLocation:
        primary = await self.repo.get_primary_location()
        if primary is None:
            raise PrimaryLocationRequiredError("No primary stock location is configured")
        return primary

    async def resolve_location(self, location_id: Optional[UUID] = None) -> StockLocation:
        """The given location, or the primary one when none is given."""
        if location_id is None:
            return await self._require_primary()
        location = await self.repo.get_location(location_id)
        if location is None:
            raise LocationNotFoundError(f"Stock location {location_id} not found")
        return location

    async def _apply_locked(self, change: StockChange, primary_id: UUID) -> Optional[AppliedChange]:
        product = await self.repo.get_product(change.product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(f"Product {change.product_id} not found")
        location = await self.repo.get_location(change.location_id)
        if location is None:
            raise LocationNotFoundError(f"Stock location {change.location_id} not found")

        row = await self.repo.ensure_product_stock(change.product_id, change.location_id)
        previous = int(row.quantity or 0)
        new = int(change.rule(previous))
        if new < 0:
            raise change.negative_error(
                f"Not enough stock for '{product.name}' at '{location.name}': "
                f"available={previous} requested={previous - new}"
            )
        if change.skip_if_unchanged and new == previous:
            return None

        row.quantity = new
        row.updated_at = utcnow()
        if location.id == primary_id:
            await self.repo.update_product_quantity(product.id, new)

        txn = await self.repo.append_stock_transaction(
            product_id=change.product_id,
            location_id=change.location_id,
            type=change.type,
            previous_quantity=previous,
            new_quantity=new,
            reason=change.reason,
            reference=change.reference,
            related_id=change.related_id,
            user_id=self.user_id,
        )
        return AppliedChange(transaction=txn, stock=row, product_name=product.name, location_name=location.name)

    async def apply_batch(
        self,
        changes: Sequence[StockChange],
        *,
        before_commit: Optional[BeforeCommit] = None,
    ) -> List[AppliedChange]:
        """Apply all changes in one transaction, or none of them."""
        if not changes:
            return []

        async with stock_locks.hold(self.tenant_id, [(c.product_id, c.location_id) for c in changes]):
            try:
                primary = await self._require_primary()
                applied: List[AppliedChange] = []
                for change in changes:
                    result = await self._apply_locked(change, primary.id)
                    if result is not None:
                        applied.append(result)
                if before_commit is not None:
                    await before_commit(applied)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        for a in applied:
            logger.info(
                "stock %s %+d product=%s location=%s (%d -> %d) ref=%s",
                a.transaction.type,
                a.transaction.quantity,
                a.transaction.product_id,
                a.transaction.warehouse_id,
                a.previous_quantity,
                a.new_quantity,
                a.transaction.reference,
            )
        return applied

    async def _apply_one(self, change: StockChange, before_commit: Optional[BeforeCommit] = None) -> Optional[AppliedChange]:
        applied = await self.apply_batch([change], before_commit=before_commit)
        return applied[0] if applied else None

    # Operations

    async def adjust(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        before_commit: Optional[BeforeCommit] = None,
    ) -> AppliedChange:
        delta = int(delta)
        if delta == 0:
            raise InvalidQuantityError("adjustment delta must be non-zero")
        return await self._apply_one(
            StockChange(
                product_id=product_id,
                location_id=location_id,
                type="adjustment",
                rule=lambda previous: previous + delta,
                reason=reason or "Manual adjustment",
                reference=reference,
            ),
            before_commit,
        )

    async def adjust_to(
        self,
        product_id: UUID,
        location_id: UUID,
        target: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Optional[AppliedChange]:
        """Set the location quantity to `target`; returns None when it already matches."""
        target = int(target)
        if target < 0:
            raise InvalidQuantityError(f"target quantity must be >= 0 (got {target})")
        return await self._apply_one(
            StockChange(
                product_id=product_id,
                location_id=location_id,
                type="adjustment",
                rule=lambda previous: target,
                reason=reason or "Stock correction",
                reference=reference,
                skip_if_unchanged=True,
            )
        )

    def entry_change(
        self,
        product_id: UUID,
        location_id: UUID,
        amount: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
    ) -> StockChange:
        amount = _require_positive(amount, "entry quantity")
        return StockChange(
            product_id=product_id,
            location_id=location_id,
            type="entry",
            rule=lambda previous: previous + amount,
            reason=reason or "Stock entry",
            reference=reference,
            related_id=related_id,
        )

    async def entry(
        self,
        product_id: UUID,
        location_id: UUID,
        amount: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
        before_commit: Optional[BeforeCommit] = None,
    ) -> AppliedChange:
        return await self._apply_one(
            self.entry_change(
                product_id, location_id, amount, reason=reason, reference=reference, related_id=related_id
            ),
            before_commit,
        )

    async def exit(
        self,
        product_id: UUID,
        location_id: UUID,
        amount: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
        before_commit: Optional[BeforeCommit] = None,
    ) -> AppliedChange:
        amount = _require_positive(amount, "exit quantity")
        return await self._apply_one(
            StockChange(
                product_id=product_id,
                location_id=location_id,
                type="exit",
                rule=lambda previous: previous - amount,
                reason=reason or "Stock exit",
                reference=reference,
                related_id=related_id,
                negative_error=InsufficientStockError,
            ),
            before_commit,
        )

    async def transfer(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: int,
        *,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> TransferOutcome:
        if from_location_id == to_location_id:
            raise SameLocationTransferError("Source and destination locations must differ")
        quantity = _require_positive(quantity, "transfer quantity")

        source = await self.repo.get_location(from_location_id)
        if source is None:
            raise LocationNotFoundError(f"Stock location {from_location_id} not found")
        destination = await self.repo.get_location(to_location_id)
        if destination is None:
            raise LocationNotFoundError(f"Stock location {to_location_id} not found")

        related_id = uuid.uuid4().hex
        reference = reference or f"{source.name} -> {destination.name}"
        reason = reason or "Transfer"
        out_change, in_change = await self.apply_batch(
            [
                StockChange(
                    product_id=product_id,
                    location_id=from_location_id,
                    type="transfer",
                    rule=lambda previous: previous - quantity,
                    reason=reason,
                    reference=reference,
                    related_id=related_id,
                    negative_error=InsufficientStockError,
                ),
                StockChange(
                    product_id=product_id,
                    location_id=to_location_id,
                    type="transfer",
                    rule=lambda previous: previous + quantity,
                    reason=reason,
                    reference=reference,
                    related_id=related_id,
                ),
            ]
        )
        return TransferOutcome(source=out_change, destination=in_change, related_id=related_id)

    async def purchase_receive(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        *,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
        before_commit: Optional[BeforeCommit] = None,
    ) -> AppliedChange:
        quantity = _require_positive(quantity, "received quantity")
        return await self._apply_one(
            StockChange(
                product_id=product_id,
                location_id=location_id,
                type="purchase",
                rule=lambda previous: previous + quantity,
                reason="Purchase order received",
                reference=reference,
                related_id=related_id,
            ),
            before_commit,
        )

    def sale_change(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        *,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
    ) -> StockChange:
        quantity = _require_positive(quantity, "sold quantity")
        return StockChange(
            product_id=product_id,
            location_id=location_id,
            type="sale",
            rule=lambda previous: previous - quantity,
            reason="POS sale",
            reference=reference,
            related_id=related_id,
            negative_error=InsufficientStockError,
        )

    async def sale_deduct(
        self,
        product_id: UUID,
        quantity: int,
        *,
        location_id: Optional[UUID] = None,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
    ) -> AppliedChange:
        location_id = (await self.resolve_location(location_id)).id
        return await self._apply_one(
            self.sale_change(product_id, location_id, quantity, reference=reference, related_id=related_id)
        )

    async def count_reconcile(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: int,
        *,
        reference: Optional[str] = None,
        related_id: Optional[str] = None,
        before_commit: Optional[BeforeCommit] = None,
    ) -> Optional[AppliedChange]:
        """Apply a counted variance; a zero variance writes nothing."""
        delta = int(delta)
        if delta == 0:
            return None
        return await self._apply_one(
            StockChange(
                product_id=product_id,
                location_id=location_id,
                type="count-adjustment",
                rule=lambda previous: previous + delta,
                reason="Inventory count variance",
                reference=reference,
                related_id=related_id,
            ),
            before_commit,
        )

    # Store-level contracts backed by the ledger

    async def add_stock(self, product_id: UUID, location_id: UUID, delta: int) -> ProductStock:
        return (await self.entry(product_id, location_id, delta)).stock

    async def remove_stock(self, product_id: UUID, location_id: UUID, delta: int) -> ProductStock:
        return (await self.exit(product_id, location_id, delta)).stock

    async def transfer_stock(
        self, product_id: UUID, from_location_id: UUID, to_location_id: UUID, quantity: int
    ) -> TransferResult:
        try:
            outcome = await self.transfer(product_id, from_location_id, to_location_id, quantity)
        except (StockError, NotFoundError) as e:
            return TransferResult(success=False, message=e.message)
        return TransferResult(success=True, message="Stock transferred successfully", outcome=outcome)

    # Repair / verification

    async def resync_primary_quantities(self, *, commit: bool = True) -> ResyncReport:
        """
        Bring Product.quantity back in line with the primary location's rows.

        - product with no stock rows anywhere (pre multi-location data): its
          Product.quantity becomes the primary row, with an opening-balance entry
        - otherwise Product.quantity is overwritten from the primary row
          (0 when the product has no row there)
        """
        primary = await self._require_primary()
        products = await self.repo.list_products()
        report = ResyncReport()

        async with stock_locks.hold(self.tenant_id, [(p.id, primary.id) for p in products]):
            try:
                for product in products:
                    cached = int(product.quantity or 0)
                    rows = await self.repo.list_stock_for_product(product.id)
                    primary_row = next((r for r in rows if r.location_id == primary.id), None)

                    if not rows:
                        opening = max(0, cached)
                        await self.repo.ensure_product_stock(product.id, primary.id)
                        if opening > 0:
                            await self.repo.upsert_product_stock(product.id, primary.id, opening)
                            await self.repo.append_stock_transaction(
                                product_id=product.id,
                                location_id=primary.id,
                                type="adjustment",
                                previous_quantity=0,
                                new_quantity=opening,
                                reason="Opening balance (stock record repair)",
                                user_id=self.user_id,
                            )
                        if opening != cached:
                            await self.repo.update_product_quantity(product.id, opening)
                        report.created += 1
                        continue

                    actual = int(primary_row.quantity or 0) if primary_row is not None else 0
                    if actual != cached:
                        await self.repo.update_product_quantity(product.id, actual)
                        report.corrected += 1
                        report.corrected_product_ids.append(product.id)
                    else:
                        report.unchanged += 1
                if commit:
                    await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        if report.created or report.corrected:
            logger.warning(
                "resynced product quantities tenant=%s created=%d corrected=%d",
                self.tenant_id, report.created, report.corrected,
            )
        return report

    async def verify_chain(self, product_id: UUID, location_id: UUID) -> List[str]:
        """Return a description of every break in the ledger chain for one key."""
        entries = await self.repo.list_transactions(
            product_id=product_id, location_id=location_id, limit=None, oldest_first=True
        )
        issues: List[str] = []
        last_new: Optional[int] = None
        for e in entries:
            if e.new_quantity != e.previous_quantity + e.quantity:
                issues.append(
                    f"entry {e.id}: {e.previous_quantity} {e.quantity:+d} != {e.new_quantity}"
                )
            if last_new is not None and e.previous_quantity != last_new:
                issues.append(
                    f"entry {e.id}: previous_quantity={e.previous_quantity} but prior entry left {last_new}"
                )
            last_new = e.new_quantity

        row = await self.repo.get_product_stock(product_id, location_id)
        current = int(row.quantity) if row is not None else 0
        if last_new is not None and last_new != current:
            issues.append(f"current quantity {current} differs from last ledger value {last_new}")
        return issues
