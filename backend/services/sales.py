"""
POS checkout, customer credit and customer returns.

Checkout validates the cart, payment and credit before touching stock, then
writes every `sale` mutation, the Sale rows and the credit bookkeeping in a
single ledger batch: one failing line rolls the whole cart back.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import (
    CustomerNotFoundError,
    InsufficientCreditError,
    InsufficientPaymentError,
    InvalidAmountError,
    InvalidQuantityError,
    NotFoundError,
    PaymentError,
    ProductNotFoundError,
    SaleNotFoundError,
)
from db.customer import Customer, CustomerCreditTransaction
from db.sale import CustomerReturn, CustomerReturnItem, Sale, SaleItem
from db.repository import StockRepository
from services.documents import make_document_number, money
from services.receipts import ReceiptData, build_receipt
from services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

SALE_PAYMENT_METHODS = ("cash", "card", "credit")
REFUND_METHODS = ("cash", "credit")


@dataclass
class CartLine:
    product_id: UUID
    quantity: int
    unit_price: Optional[Decimal] = None


@dataclass
class ReturnLine:
    sale_item_id: UUID
    quantity: int


class SalesService:
    def __init__(self, db: AsyncSession, tenant_id: str, user_id: Optional[UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.repo = StockRepository(db, tenant_id)
        self.ledger = StockLedger(db, tenant_id, user_id=user_id)

    async def get_customer(self, customer_id: UUID, *, for_update: bool = False) -> Customer:
        stmt = select(Customer).where(Customer.id == customer_id, Customer.tenant_id == self.tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await self.db.execute(stmt.execution_options(populate_existing=True))
        customer = res.scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        return customer

    async def get_sale(self, sale_id: UUID) -> Sale:
        res = await self.db.execute(
            select(Sale)
            .where(Sale.id == sale_id, Sale.tenant_id == self.tenant_id)
            .options(selectinload(Sale.items))
            .execution_options(populate_existing=True)
        )
        sale = res.scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(f"Sale {sale_id} not found")
        return sale

    async def list_sales(self, customer_id: Optional[UUID] = None, limit: int = 100) -> List[Sale]:
        stmt = (
            select(Sale)
            .where(Sale.tenant_id == self.tenant_id)
            .options(selectinload(Sale.items))
            .order_by(Sale.date.desc())
            .limit(limit)
        )
        if customer_id:
            stmt = stmt.where(Sale.customer_id == customer_id)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def _add_credit_entry(
        self, customer: Customer, kind: str, amount: Decimal, *, sale_id=None, description=None
    ) -> CustomerCreditTransaction:
        customer.credit_balance = money(customer.credit_balance) + amount
        entry = CustomerCreditTransaction(
            tenant_id=self.tenant_id,
            customer_id=customer.id,
            sale_id=sale_id,
            type=kind,
            amount=amount,
            balance_after=customer.credit_balance,
            description=description,
        )
        self.db.add(entry)
        return entry

    async def checkout(
        self,
        lines: Sequence[CartLine],
        *,
        payment_method: str = "cash",
        paid_amount=None,
        customer_id: Optional[UUID] = None,
        discount_amount=0,
        tax_amount=0,
        location_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Sale, ReceiptData]:
        if not lines:
            raise InvalidQuantityError("The cart is empty")
        if payment_method not in SALE_PAYMENT_METHODS:
            raise PaymentError(f"Unknown payment method '{payment_method}'")

        priced = []
        for line in lines:
            if int(line.quantity) <= 0:
                raise InvalidQuantityError(f"Cart quantity must be > 0 (got {line.quantity})")
            product = await self.repo.get_product(line.product_id)
            if product is None or not product.active:
                raise ProductNotFoundError(f"Product {line.product_id} not found")
            unit_price = money(product.selling_price if line.unit_price is None else line.unit_price)
            if unit_price < 0:
                raise InvalidAmountError("Unit price cannot be negative")
            priced.append((product.id, product.name, int(line.quantity), unit_price))

        subtotal = sum((price * qty for _, _, qty, price in priced), Decimal("0.00"))
        discount = money(discount_amount)
        tax = money(tax_amount)
        if discount < 0 or discount > subtotal:
            raise InvalidAmountError(f"Discount must be between 0 and {subtotal}")
        if tax < 0:
            raise InvalidAmountError("Tax cannot be negative")
        total = subtotal - discount + tax

        customer = await self.get_customer(customer_id) if customer_id else None
        if payment_method == "cash":
            paid = money(total if paid_amount is None else paid_amount)
            if paid < total:
                raise InsufficientPaymentError(f"Paid {paid} is less than the total {total}")
        elif payment_method == "card":
            paid = total
        else:
            if customer is None:
                raise PaymentError("A credit sale needs a customer")
            paid = Decimal("0.00")
            if money(customer.credit_balance) + total > money(customer.credit_limit):
                raise InsufficientCreditError(
                    f"Credit limit exceeded for {customer.name}: balance {customer.credit_balance}, "
                    f"limit {customer.credit_limit}, sale {total}"
                )
        change = paid - total if payment_method == "cash" else Decimal("0.00")
        customer_name = customer.name if customer else None

        location = await self.ledger.resolve_location(location_id)
        location_name = location.name
        sale_id = uuid.uuid4()
        invoice_number = make_document_number("INV")
        changes = [
            self.ledger.sale_change(product_id, location.id, qty, reference=invoice_number, related_id=str(sale_id))
            for product_id, _, qty, _ in priced
        ]

        async def _record_sale(applied):
            self.db.add(
                Sale(
                    id=sale_id,
                    tenant_id=self.tenant_id,
                    invoice_number=invoice_number,
                    customer_id=customer_id,
                    location_id=location.id,
                    subtotal=subtotal,
                    discount_amount=discount,
                    tax_amount=tax,
                    total_amount=total,
                    paid_amount=paid,
                    change_amount=change,
                    payment_method=payment_method,
                    status="completed",
                    notes=notes,
                    created_by_user_id=self.user_id,
                    items=[
                        SaleItem(
                            product_id=product_id,
                            product_name=name,
                            quantity=qty,
                            unit_price=price,
                            total_price=price * qty,
                            returned_quantity=0,
                        )
                        for product_id, name, qty, price in priced
                    ],
                )
            )
            if payment_method == "credit":
                locked = await self.get_customer(customer_id, for_update=True)
                if money(locked.credit_balance) + total > money(locked.credit_limit):
                    raise InsufficientCreditError(f"Credit limit exceeded for {locked.name}")
                await self._add_credit_entry(
                    locked, "credit_sale", total, sale_id=sale_id, description=f"Sale {invoice_number}"
                )
            await self.db.flush()

        await self.ledger.apply_batch(changes, before_commit=_record_sale)
        sale = await self.get_sale(sale_id)
        logger.info("checkout %s: %d lines total=%s via %s", invoice_number, len(priced), total, payment_method)
        return sale, build_receipt(sale, customer_name=customer_name, location_name=location_name)

    async def receipt(self, sale_id: UUID) -> ReceiptData:
        sale = await self.get_sale(sale_id)
        customer_name = None
        if sale.customer_id:
            customer_name = (await self.get_customer(sale.customer_id)).name
        location = await self.repo.get_location(sale.location_id) if sale.location_id else None
        return build_receipt(sale, customer_name=customer_name, location_name=location.name if location else None)

    async def record_credit_payment(
        self, customer_id: UUID, amount, description: Optional[str] = None
    ) -> Tuple[CustomerCreditTransaction, Decimal]:
        """Apply a payment against the customer's balance, capped at what is owed."""
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmountError("Payment amount must be positive")
        customer = await self.get_customer(customer_id, for_update=True)
        owed = money(customer.credit_balance)
        if owed <= 0:
            raise InvalidAmountError(f"{customer.name} has no outstanding balance")
        applied = min(amount, owed)
        entry = await self._add_credit_entry(
            customer, "payment", -applied, description=description or "Credit payment"
        )
        await self.db.commit()
        logger.info("customer %s paid %s (balance now %s)", customer.id, applied, customer.credit_balance)
        return entry, applied

    async def list_credit_transactions(self, customer_id: UUID) -> List[CustomerCreditTransaction]:
        await self.get_customer(customer_id)
        res = await self.db.execute(
            select(CustomerCreditTransaction)
            .where(
                CustomerCreditTransaction.tenant_id == self.tenant_id,
                CustomerCreditTransaction.customer_id == customer_id,
            )
            .order_by(CustomerCreditTransaction.created_at.desc())
        )
        return list(res.scalars().all())

    async def create_return(
        self,
        sale_id: UUID,
        lines: Sequence[ReturnLine],
        *,
        refund_method: str = "cash",
        reason: Optional[str] = None,
    ) -> CustomerReturn:
        if not lines:
            raise InvalidQuantityError("A return needs at least one line")
        if refund_method not in REFUND_METHODS:
            raise PaymentError(f"Unknown refund method '{refund_method}'")

        sale = await self.get_sale(sale_id)
        if refund_method == "credit" and sale.customer_id is None:
            raise PaymentError("A credit refund needs a sale with a customer")

        items_by_id = {i.id: i for i in sale.items}
        requested = {}
        for line in lines:
            if int(line.quantity) <= 0:
                raise InvalidQuantityError(f"Return quantity must be > 0 (got {line.quantity})")
            if line.sale_item_id not in items_by_id:
                raise NotFoundError(f"Sale item {line.sale_item_id} is not part of sale {sale.invoice_number}")
            requested[line.sale_item_id] = requested.get(line.sale_item_id, 0) + int(line.quantity)

        returned = []
        for item_id, qty in requested.items():
            item = items_by_id[item_id]
            returnable = int(item.quantity) - int(item.returned_quantity or 0)
            if qty > returnable:
                raise InvalidQuantityError(
                    f"Cannot return {qty} of '{item.product_name}'; only {returnable} returnable"
                )
            returned.append((item_id, item.product_id, qty, money(item.unit_price) * qty))

        location = await self.ledger.resolve_location(sale.location_id)
        refund_total = sum((amount for _, _, _, amount in returned), Decimal("0.00"))
        return_id = uuid.uuid4()
        return_number = make_document_number("RC")
        customer_id = sale.customer_id
        changes = [
            self.ledger.entry_change(
                product_id,
                location.id,
                qty,
                reason=reason or "Customer return",
                reference=return_number,
                related_id=str(return_id),
            )
            for _, product_id, qty, _ in returned
        ]

        async def _record_return(applied):
            self.db.add(
                CustomerReturn(
                    id=return_id,
                    tenant_id=self.tenant_id,
                    return_number=return_number,
                    sale_id=sale_id,
                    customer_id=customer_id,
                    refund_method=refund_method,
                    refund_amount=refund_total,
                    reason=reason,
                    items=[
                        CustomerReturnItem(sale_item_id=item_id, product_id=product_id, quantity=qty, amount=amount)
                        for item_id, product_id, qty, amount in returned
                    ],
                )
            )
            # Re-checked under the stock lock: `returnable` above may be stale
            for item_id, _, qty, _ in returned:
                res = await self.db.execute(
                    update(SaleItem)
                    .where(SaleItem.id == item_id, SaleItem.quantity - SaleItem.returned_quantity >= qty)
                    .values(returned_quantity=SaleItem.returned_quantity + qty)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    raise InvalidQuantityError(
                        f"Cannot return {qty} of sale item {item_id}; it was returned meanwhile"
                    )
            still_open = await self.db.scalar(
                select(func.count())
                .select_from(SaleItem)
                .where(SaleItem.sale_id == sale_id, SaleItem.returned_quantity < SaleItem.quantity)
            )
            await self.db.execute(
                update(Sale)
                .where(Sale.id == sale_id)
                .values(status="partially_returned" if still_open else "returned")
                .execution_options(synchronize_session=False)
            )
            if refund_method == "credit":
                customer = await self.get_customer(customer_id, for_update=True)
                reduction = min(refund_total, max(Decimal("0.00"), money(customer.credit_balance)))
                await self._add_credit_entry(
                    customer, "refund", -reduction, sale_id=sale_id, description=f"Return {return_number}"
                )
            await self.db.flush()

        await self.ledger.apply_batch(changes, before_commit=_record_return)
        logger.info("customer return %s for sale %s refund=%s", return_number, sale_id, refund_total)

        res = await self.db.execute(
            select(CustomerReturn)
            .where(CustomerReturn.id == return_id)
            .options(selectinload(CustomerReturn.items))
        )
        return res.scalar_one()
