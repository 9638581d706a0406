"""
POS checkout, customer credit and customer returns.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio

from core.errors import (
    InsufficientCreditError,
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidQuantityError,
    PaymentError,
    ProductNotFoundError,
)
from db.customer import Customer
from services.products import ProductService
from services.sales import CartLine, ReturnLine, SalesService
from tests.conftest import TENANT


@pytest_asyncio.fixture
async def customer(db):
    c = Customer(tenant_id=TENANT, name="Hotel Zitoun", credit_limit=Decimal("100.00"), credit_balance=Decimal("0"))
    db.add(c)
    await db.commit()
    db.expunge(c)
    return c


@pytest.fixture
def sales(db, user):
    return SalesService(db, TENANT, user_id=user.id)


async def _credit_balance(sales, customer_id) -> Decimal:
    return Decimal((await sales.get_customer(customer_id)).credit_balance)


class TestCheckout:
    @pytest.mark.asyncio
    async def test_cash_sale_deducts_primary_and_builds_receipt(self, sales, primary, make_product, stock_of, product_quantity, ledger_entries):
        product = await make_product(name="Olive oil", quantity=5, price="10.00")

        sale, receipt = await sales.checkout([CartLine(product.id, 3)], paid_amount="50")

        assert sale.invoice_number.startswith("INV-")
        assert Decimal(sale.total_amount) == Decimal("30.00")
        assert Decimal(sale.change_amount) == Decimal("20.00")
        assert sale.location_id == primary.id
        assert await stock_of(product.id, primary.id) == 2
        assert await product_quantity(product.id) == 2
        entry = (await ledger_entries(product.id))[-1]
        assert (entry.type, entry.quantity) == ("sale", -3)
        assert entry.reference == sale.invoice_number
        assert entry.related_id == str(sale.id)

        assert receipt.invoice_number == sale.invoice_number
        assert receipt.location_name == "Main Store"
        assert [(l.name, l.quantity, l.total) for l in receipt.lines] == [("Olive oil", 3, 30.0)]
        assert (receipt.total, receipt.paid, receipt.change) == (30.0, 50.0, 20.0)

    @pytest.mark.asyncio
    async def test_discount_and_tax(self, sales, primary, make_product):
        product = await make_product(quantity=5, price="10.00")

        sale, receipt = await sales.checkout(
            [CartLine(product.id, 3)], payment_method="card", discount_amount="5", tax_amount="2"
        )

        assert Decimal(sale.subtotal) == Decimal("30.00")
        assert Decimal(sale.total_amount) == Decimal("27.00")
        assert Decimal(sale.paid_amount) == Decimal("27.00")
        assert receipt.discount == 5.0

    @pytest.mark.asyncio
    async def test_short_cash_payment_touches_nothing(self, sales, primary, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=5, price="10.00")

        with pytest.raises(InsufficientPaymentError):
            await sales.checkout([CartLine(product.id, 3)], paid_amount="10")

        assert await stock_of(product.id, primary.id) == 5
        assert len(await ledger_entries(product.id)) == 1
        assert await sales.list_sales() == []

    @pytest.mark.asyncio
    async def test_credit_limit_checked_before_stock(self, sales, customer, primary, make_product, stock_of):
        product = await make_product(quantity=20, price="10.00")

        with pytest.raises(InsufficientCreditError):
            await sales.checkout([CartLine(product.id, 11)], payment_method="credit", customer_id=customer.id)

        assert await stock_of(product.id, primary.id) == 20
        assert await _credit_balance(sales, customer.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_credit_needs_customer(self, sales, primary, make_product):
        product = await make_product(quantity=2)
        with pytest.raises(PaymentError):
            await sales.checkout([CartLine(product.id, 1)], payment_method="credit")

    @pytest.mark.asyncio
    async def test_credit_sale_raises_balance(self, sales, customer, primary, make_product):
        product = await make_product(quantity=20, price="10.00")

        sale, receipt = await sales.checkout(
            [CartLine(product.id, 3)], payment_method="credit", customer_id=customer.id
        )

        assert Decimal(sale.paid_amount) == Decimal("0")
        assert receipt.customer_name == "Hotel Zitoun"
        assert await _credit_balance(sales, customer.id) == Decimal("30.00")
        (entry,) = await sales.list_credit_transactions(customer.id)
        assert (entry.type, Decimal(entry.amount), Decimal(entry.balance_after)) == (
            "credit_sale", Decimal("30.00"), Decimal("30.00")
        )
        assert entry.sale_id == sale.id

    @pytest.mark.asyncio
    async def test_one_short_line_cancels_the_cart(self, sales, primary, make_product, stock_of):
        a = await make_product(name="A", quantity=5)
        b = await make_product(name="B", quantity=1)

        with pytest.raises(InsufficientStockError):
            await sales.checkout([CartLine(a.id, 2), CartLine(b.id, 2)], payment_method="card")

        assert await stock_of(a.id, primary.id) == 5
        assert await stock_of(b.id, primary.id) == 1
        assert await sales.list_sales() == []

    @pytest.mark.asyncio
    async def test_sale_from_another_location(self, sales, db, primary, warehouse, make_product, stock_of, product_quantity):
        from services.stock_ledger import StockLedger

        product = await make_product(quantity=1)
        await StockLedger(db, TENANT).entry(product.id, warehouse.id, 4)

        sale, receipt = await sales.checkout([CartLine(product.id, 3)], payment_method="card", location_id=warehouse.id)

        assert sale.location_id == warehouse.id
        assert receipt.location_name == "Warehouse"
        assert await stock_of(product.id, warehouse.id) == 1
        assert await product_quantity(product.id) == 1

    @pytest.mark.asyncio
    async def test_invalid_carts(self, sales, db, primary, make_product):
        product = await make_product(quantity=3)
        with pytest.raises(InvalidQuantityError):
            await sales.checkout([])
        with pytest.raises(InvalidQuantityError):
            await sales.checkout([CartLine(product.id, 0)])
        with pytest.raises(PaymentError):
            await sales.checkout([CartLine(product.id, 1)], payment_method="barter")

        await ProductService(db, TENANT).deactivate(product.id)
        with pytest.raises(ProductNotFoundError):
            await sales.checkout([CartLine(product.id, 1)])

    @pytest.mark.asyncio
    async def test_receipt_can_be_rebuilt(self, sales, customer, primary, make_product):
        product = await make_product(name="Dates", quantity=4, price="2.50")
        sale, original = await sales.checkout(
            [CartLine(product.id, 2)], payment_method="credit", customer_id=customer.id
        )

        receipt = await sales.receipt(sale.id)

        assert receipt.as_dict() == original.as_dict()


class TestCustomerCredit:
    @pytest.mark.asyncio
    async def test_payment_is_capped_at_balance(self, sales, customer, primary, make_product):
        product = await make_product(quantity=10, price="10.00")
        await sales.checkout([CartLine(product.id, 3)], payment_method="credit", customer_id=customer.id)

        entry, applied = await sales.record_credit_payment(customer.id, "50")

        assert applied == Decimal("30.00")
        assert Decimal(entry.amount) == Decimal("-30.00")
        assert await _credit_balance(sales, customer.id) == Decimal("0")
        with pytest.raises(InvalidAmountError):
            await sales.record_credit_payment(customer.id, "1")

    @pytest.mark.asyncio
    async def test_non_positive_payment(self, sales, customer):
        with pytest.raises(InvalidAmountError):
            await sales.record_credit_payment(customer.id, "0")


class TestCustomerReturns:
    @pytest.mark.asyncio
    async def test_partial_then_full_return(self, sales, primary, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=5, price="10.00")
        sale, _ = await sales.checkout([CartLine(product.id, 3)], payment_method="card")
        item_id = sale.items[0].id

        first = await sales.create_return(sale.id, [ReturnLine(item_id, 2)], reason="Wrong size")

        assert first.return_number.startswith("RC-")
        assert Decimal(first.refund_amount) == Decimal("20.00")
        assert await stock_of(product.id, primary.id) == 4
        entry = (await ledger_entries(product.id))[-1]
        assert (entry.type, entry.quantity, entry.reference) == ("entry", 2, first.return_number)
        assert (await sales.get_sale(sale.id)).status == "partially_returned"

        await sales.create_return(sale.id, [ReturnLine(item_id, 1)])
        refreshed = await sales.get_sale(sale.id)
        assert refreshed.status == "returned"
        assert refreshed.items[0].returned_quantity == 3

        with pytest.raises(InvalidQuantityError):
            await sales.create_return(sale.id, [ReturnLine(item_id, 1)])
        assert await stock_of(product.id, primary.id) == 5

    @pytest.mark.asyncio
    async def test_concurrent_returns_cannot_exceed_sold(self, sales, session_maker, user, primary, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=5, price="10.00")
        sale, _ = await sales.checkout([CartLine(product.id, 1)], payment_method="card")
        sale_id, item_id = sale.id, sale.items[0].id

        async def _return_one():
            async with session_maker() as session:
                return await SalesService(session, TENANT, user_id=user.id).create_return(
                    sale_id, [ReturnLine(item_id, 1)]
                )

        results = await asyncio.gather(_return_one(), _return_one(), return_exceptions=True)

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidQuantityError)
        assert await stock_of(product.id, primary.id) == 5
        restocks = [e for e in await ledger_entries(product.id) if e.type == "entry" and (e.reference or "").startswith("RC-")]
        assert len(restocks) == 1
        refreshed = await sales.get_sale(sale_id)
        assert refreshed.items[0].returned_quantity == 1
        assert refreshed.status == "returned"

    @pytest.mark.asyncio
    async def test_credit_refund_reduces_balance(self, sales, customer, primary, make_product):
        product = await make_product(quantity=5, price="10.00")
        sale, _ = await sales.checkout([CartLine(product.id, 3)], payment_method="credit", customer_id=customer.id)

        await sales.create_return(sale.id, [ReturnLine(sale.items[0].id, 1)], refund_method="credit")

        assert await _credit_balance(sales, customer.id) == Decimal("20.00")
        kinds = sorted(t.type for t in await sales.list_credit_transactions(customer.id))
        assert kinds == ["credit_sale", "refund"]

    @pytest.mark.asyncio
    async def test_credit_refund_needs_customer(self, sales, primary, make_product):
        product = await make_product(quantity=5)
        sale, _ = await sales.checkout([CartLine(product.id, 1)], payment_method="card")
        with pytest.raises(PaymentError):
            await sales.create_return(sale.id, [ReturnLine(sale.items[0].id, 1)], refund_method="credit")
