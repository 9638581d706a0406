"""
Supplier side: purchase orders, receiving, supplier payments and returns.

Receiving and returns run one ledger mutation per line. A failing line is
reported in the aggregate result and never stops the others; the line's own
bookkeeping (received_quantity, return item, supplier balance) is written in
the `before_commit` hook so it commits or rolls back with its stock change.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import (
    AlreadyAppliedError,
    DomainError,
    InvalidAmountError,
    InvalidOrderStateError,
    InvalidQuantityError,
    OrderNotFoundError,
    ProductNotFoundError,
    SupplierNotFoundError,
)
from db.product import utcnow
from db.purchase_order import PurchaseOrder, PurchaseOrderItem
from db.repository import StockRepository
from db.supplier import Supplier, SupplierPayment, SupplierReturn, SupplierReturnItem
from services.documents import make_document_number, money
from services.results import WorkflowResult
from services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "credit", "bank_check")


@dataclass
class OrderLine:
    product_id: UUID
    quantity: int
    unit_cost: Decimal = Decimal("0")


def payment_status_for(paid: Decimal, total: Decimal) -> str:
    if paid >= total and total > 0:
        return "paid"
    if paid > 0:
        return "partial"
    return "unpaid" if total > 0 else "paid"


class PurchasingService:
    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.repo = StockRepository(db, tenant_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def _get_supplier(self, supplier_id: UUID, *, for_update: bool = False) -> Supplier:
        stmt = select(Supplier).where(Supplier.id == supplier_id, Supplier.tenant_id == self.tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt.execution_options(populate_existing=True))
        supplier = res.scalar_one_or_none()
        if supplier is None:
            raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    async def get_order(self, order_id: UUID) -> PurchaseOrder:
        res = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id, PurchaseOrder.tenant_id == self.tenant_id)
            .options(selectinload(PurchaseOrder.items))
            .execution_options(populate_existing=True)
        )
        order = res.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Purchase order {order_id} not found")
        return order

    async def list_orders(
        self, status: Optional[str] = None, supplier_id: Optional[UUID] = None
    ) -> List[PurchaseOrder]:
        stmt = (
            select(PurchaseOrder)
            .where(PurchaseOrder.tenant_id == self.tenant_id)
            .options(selectinload(PurchaseOrder.items))
            .order_by(PurchaseOrder.order_date.desc())
        )
        if status:
            stmt = stmt.where(PurchaseOrder.status == status)
        if supplier_id:
            stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def create_order(
        self,
        lines: Sequence[OrderLine],
        *,
        supplier_id: Optional[UUID] = None,
        warehouse_id: Optional[UUID] = None,
        payment_method: str = "cash",
        paid_amount=0,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        if not lines:
            raise InvalidQuantityError("A purchase order needs at least one line")
        if payment_method not in PAYMENT_METHODS:
            raise InvalidAmountError(f"Unknown payment method '{payment_method}'")
        for line in lines:
            if int(line.quantity) <= 0:
                raise InvalidQuantityError(f"Order quantity must be > 0 (got {line.quantity})")
            if money(line.unit_cost) < 0:
                raise InvalidAmountError("Unit cost cannot be negative")
            if await self.repo.get_product(line.product_id) is None:
                raise ProductNotFoundError(f"Product {line.product_id} not found")

        supplier = await self._get_supplier(supplier_id) if supplier_id else None
        warehouse = await self.ledger.resolve_location(warehouse_id)

        subtotal = sum((money(l.unit_cost) * int(l.quantity) for l in lines), Decimal("0.00"))
        paid = money(paid_amount)
        if paid < 0 or paid > subtotal:
            raise InvalidAmountError(f"Paid amount must be between 0 and {subtotal}")
        remaining = subtotal - paid

        order = PurchaseOrder(
            tenant_id=self.tenant_id,
            order_number=make_document_number("PO"),
            supplier_id=supplier.id if supplier else None,
            warehouse_id=warehouse.id,
            status="pending",
            subtotal=subtotal,
            total=subtotal,
            payment_method=payment_method,
            payment_status=payment_status_for(paid, subtotal),
            paid_amount=paid,
            remaining_amount=remaining,
            notes=notes,
            created_by_user_id=self.user_id,
            items=[
                PurchaseOrderItem(
                    product_id=l.product_id,
                    quantity=int(l.quantity),
                    unit_cost=money(l.unit_cost),
                    total_cost=money(l.unit_cost) * int(l.quantity),
                    received_quantity=0,
                )
                for l in lines
            ],
        )
        self.db.add(order)
        if supplier is not None:
            supplier.balance = money(supplier.balance) + remaining
        await self.db.commit()
        logger.info("created purchase order %s total=%s", order.order_number, subtotal)
        return await self.get_order(order.id)

    async def cancel_order(self, order_id: UUID) -> PurchaseOrder:
        order = await self.get_order(order_id)
        if order.status != "pending":
            raise InvalidOrderStateError(f"Only pending orders can be cancelled (status '{order.status}')")
        order.status = "cancelled"
        if order.supplier_id:
            supplier = await self._get_supplier(order.supplier_id, for_update=True)
            supplier.balance = money(supplier.balance) - money(order.remaining_amount)
        await self.db.commit()
        return await self.get_order(order_id)

    async def receive_order(
        self, order_id: UUID, quantities: Optional[Dict[UUID, int]] = None
    ) -> Tuple[WorkflowResult, PurchaseOrder]:
        """
        Receive an order's lines into its warehouse.

        `quantities` maps order item ids to the amount to receive now; without
        it every line receives whatever is still outstanding. Lines with
        nothing outstanding are skipped, so receiving twice is a no-op.
        """
        order = await self.get_order(order_id)
        if order.status == "cancelled":
            raise InvalidOrderStateError("A cancelled order cannot be received")

        warehouse = await self.ledger.resolve_location(order.warehouse_id)
        warehouse_id = warehouse.id
        order_number = order.order_number
        lines = [(i.id, i.product_id, i.remaining_quantity) for i in order.items]

        result = WorkflowResult()
        for item_id, product_id, remaining in lines:
            if quantities is not None and item_id not in quantities:
                result.skipped += 1
                continue
            to_receive = remaining if quantities is None else int(quantities[item_id])
            if to_receive == 0:
                result.skipped += 1
                continue

            async def _bump_received(applied, item_id=item_id, n=to_receive):
                # Re-checked under the stock lock: `remaining` may be stale
                res = await self.db.execute(
                    update(PurchaseOrderItem)
                    .where(
                        PurchaseOrderItem.id == item_id,
                        PurchaseOrderItem.received_quantity + n <= PurchaseOrderItem.quantity,
                    )
                    .values(received_quantity=PurchaseOrderItem.received_quantity + n)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    left = await self.db.scalar(
                        select(PurchaseOrderItem.quantity - PurchaseOrderItem.received_quantity)
                        .where(PurchaseOrderItem.id == item_id)
                    )
                    if not left:
                        raise AlreadyAppliedError(f"Line {item_id} was already received")
                    raise InvalidQuantityError(f"Cannot receive {n}; only {left} outstanding on this line")

            try:
                if to_receive > remaining:
                    raise InvalidQuantityError(
                        f"Cannot receive {to_receive}; only {remaining} outstanding on this line"
                    )
                await self.ledger.purchase_receive(
                    product_id,
                    warehouse_id,
                    to_receive,
                    reference=order_number,
                    related_id=str(order_id),
                    before_commit=_bump_received,
                )
                result.succeeded += 1
            except AlreadyAppliedError:
                result.skipped += 1
            except DomainError as e:
                logger.warning("order %s line %s not received: %s", order_number, item_id, e.message)
                result.add_failure(item_id, product_id, e)
            except Exception as e:
                logger.exception("unexpected error receiving order %s line %s", order_number, item_id)
                result.add_failure(item_id, product_id, e)

        order = await self.get_order(order_id)
        if all(i.remaining_quantity == 0 for i in order.items):
            if order.status != "received":
                order.status = "received"
                order.received_date = utcnow()
        elif any(int(i.received_quantity or 0) > 0 for i in order.items):
            order.status = "partial"
        await self.db.commit()

        logger.info(
            "received order %s: %d lines received, %d skipped, %d failed (status %s)",
            order_number, result.succeeded, result.skipped, result.failed, order.status,
        )
        return result, order

    async def record_payment(
        self,
        supplier_id: UUID,
        amount,
        *,
        payment_method: str = "cash",
        order_id: Optional[UUID] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SupplierPayment:
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmountError("Payment amount must be positive")
        if payment_method not in PAYMENT_METHODS:
            raise InvalidAmountError(f"Unknown payment method '{payment_method}'")

        supplier = await self._get_supplier(supplier_id, for_update=True)
        order = None
        if order_id is not None:
            order = await self.get_order(order_id)
            if order.supplier_id != supplier.id:
                raise InvalidOrderStateError("The order belongs to another supplier")
            outstanding = money(order.remaining_amount)
        else:
            outstanding = money(supplier.balance)
        if amount > outstanding:
            raise InvalidAmountError(f"Payment {amount} exceeds the outstanding amount {outstanding}")

        supplier.balance = money(supplier.balance) - amount
        if order is not None:
            order.paid_amount = money(order.paid_amount) + amount
            order.remaining_amount = money(order.remaining_amount) - amount
            order.payment_status = payment_status_for(money(order.paid_amount), money(order.total))

        payment = SupplierPayment(
            tenant_id=self.tenant_id,
            supplier_id=supplier.id,
            order_id=order_id,
            amount=amount,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
        )
        self.db.add(payment)
        await self.db.commit()
        logger.info("supplier %s paid %s (balance now %s)", supplier.id, amount, supplier.balance)
        return payment

    async def create_return(
        self,
        supplier_id: UUID,
        lines: Sequence[OrderLine],
        *,
        location_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> Tuple[WorkflowResult, Optional[SupplierReturn]]:
        if not lines:
            raise InvalidQuantityError("A supplier return needs at least one line")
        await self._get_supplier(supplier_id)
        location = await self.ledger.resolve_location(location_id)
        location_id = location.id

        return_id = uuid.uuid4()
        return_number = make_document_number("RS")
        self.db.add(
            SupplierReturn(
                id=return_id,
                tenant_id=self.tenant_id,
                return_number=return_number,
                supplier_id=supplier_id,
                location_id=location_id,
                reason=reason,
                total_amount=Decimal("0.00"),
            )
        )
        await self.db.commit()

        result = WorkflowResult()
        for line in lines:
            value = money(line.unit_cost) * int(line.quantity)

            async def _record_line(applied, line=line, value=value):
                self.db.add(
                    SupplierReturnItem(
                        return_id=return_id,
                        product_id=line.product_id,
                        quantity=int(line.quantity),
                        unit_cost=money(line.unit_cost),
                    )
                )
                await self.db.execute(
                    update(SupplierReturn)
                    .where(SupplierReturn.id == return_id)
                    .values(total_amount=SupplierReturn.total_amount + value)
                )
                await self.db.execute(
                    update(Supplier).where(Supplier.id == supplier_id).values(balance=Supplier.balance - value)
                )

            try:
                await self.ledger.exit(
                    line.product_id,
                    location_id,
                    line.quantity,
                    reason=reason or "Supplier return",
                    reference=return_number,
                    related_id=str(return_id),
                    before_commit=_record_line,
                )
                result.succeeded += 1
            except DomainError as e:
                logger.warning("supplier return %s line %s failed: %s", return_number, line.product_id, e.message)
                result.add_failure(None, line.product_id, e)
            except Exception as e:
                logger.exception("unexpected error on supplier return %s line %s", return_number, line.product_id)
                result.add_failure(None, line.product_id, e)

        res = await self.db.execute(
            select(SupplierReturn)
            .where(SupplierReturn.id == return_id)
            .options(selectinload(SupplierReturn.items))
            .execution_options(populate_existing=True)
        )
        supplier_return = res.scalar_one()
        if result.succeeded == 0:
            await self.db.delete(supplier_return)
            await self.db.commit()
            return result, None
        return result, supplier_return
