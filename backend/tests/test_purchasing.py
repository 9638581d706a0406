"""
Purchase orders: receiving into a warehouse, payments and supplier returns.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio

from core.errors import InvalidAmountError, InvalidOrderStateError, InvalidQuantityError
from db.supplier import Supplier
from services.purchasing import OrderLine, PurchasingService, payment_status_for
from tests.conftest import TENANT


@pytest_asyncio.fixture
async def supplier(db):
    s = Supplier(tenant_id=TENANT, name="Atlas Distribution")
    db.add(s)
    await db.commit()
    db.expunge(s)
    return s


@pytest.fixture
def purchasing(db, user):
    return PurchasingService(db, TENANT, user_id=user.id)


async def _balance(purchasing, supplier_id) -> Decimal:
    return Decimal((await purchasing._get_supplier(supplier_id)).balance)


def test_payment_status_for():
    assert payment_status_for(Decimal("0"), Decimal("10")) == "unpaid"
    assert payment_status_for(Decimal("4"), Decimal("10")) == "partial"
    assert payment_status_for(Decimal("10"), Decimal("10")) == "paid"
    assert payment_status_for(Decimal("0"), Decimal("0")) == "paid"


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_order_totals_and_supplier_balance(self, purchasing, supplier, primary, make_product):
        product = await make_product(quantity=0)

        order = await purchasing.create_order(
            [OrderLine(product.id, 10, Decimal("2.50"))],
            supplier_id=supplier.id,
            payment_method="credit",
            paid_amount="5",
        )

        assert order.order_number.startswith("PO-")
        assert order.status == "pending"
        assert order.warehouse_id == primary.id
        assert Decimal(order.total) == Decimal("25.00")
        assert Decimal(order.remaining_amount) == Decimal("20.00")
        assert order.payment_status == "partial"
        assert await _balance(purchasing, supplier.id) == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_invalid_orders(self, purchasing, supplier, primary, make_product):
        product = await make_product(quantity=0)
        with pytest.raises(InvalidQuantityError):
            await purchasing.create_order([])
        with pytest.raises(InvalidQuantityError):
            await purchasing.create_order([OrderLine(product.id, 0, Decimal("1"))])
        with pytest.raises(InvalidAmountError):
            await purchasing.create_order([OrderLine(product.id, 1, Decimal("1"))], paid_amount="2")
        with pytest.raises(InvalidAmountError):
            await purchasing.create_order([OrderLine(product.id, 1, Decimal("1"))], payment_method="barter")

    @pytest.mark.asyncio
    async def test_cancel_releases_supplier_balance(self, purchasing, supplier, primary, make_product):
        product = await make_product(quantity=0)
        order = await purchasing.create_order(
            [OrderLine(product.id, 4, Decimal("3"))], supplier_id=supplier.id, payment_method="credit"
        )

        cancelled = await purchasing.cancel_order(order.id)

        assert cancelled.status == "cancelled"
        assert await _balance(purchasing, supplier.id) == Decimal("0")
        with pytest.raises(InvalidOrderStateError):
            await purchasing.receive_order(order.id)
        with pytest.raises(InvalidOrderStateError):
            await purchasing.cancel_order(order.id)


class TestReceiveOrder:
    @pytest.mark.asyncio
    async def test_receive_into_warehouse(self, purchasing, primary, warehouse, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=0)
        order = await purchasing.create_order([OrderLine(product.id, 10, Decimal("1"))], warehouse_id=warehouse.id)

        result, received = await purchasing.receive_order(order.id)

        assert (result.succeeded, result.failed) == (1, 0)
        assert received.status == "received"
        assert received.received_date is not None
        assert await stock_of(product.id, warehouse.id) == 10
        (entry,) = await ledger_entries(product.id, warehouse.id)
        assert (entry.type, entry.previous_quantity, entry.new_quantity) == ("purchase", 0, 10)
        assert entry.reference == order.order_number
        assert entry.related_id == str(order.id)

    @pytest.mark.asyncio
    async def test_receiving_twice_adds_nothing(self, purchasing, primary, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=0)
        order = await purchasing.create_order([OrderLine(product.id, 10, Decimal("1"))])
        await purchasing.receive_order(order.id)

        result, again = await purchasing.receive_order(order.id)

        assert (result.succeeded, result.skipped) == (0, 1)
        assert again.status == "received"
        assert await stock_of(product.id, primary.id) == 10
        assert len(await ledger_entries(product.id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_receives_apply_once(self, purchasing, session_maker, user, primary, make_product, stock_of, ledger_entries):
        product = await make_product(quantity=0)
        order = await purchasing.create_order([OrderLine(product.id, 10, Decimal("1"))])

        async def _receive():
            async with session_maker() as session:
                result, _ = await PurchasingService(session, TENANT, user_id=user.id).receive_order(order.id)
                return result

        results = await asyncio.gather(_receive(), _receive())

        assert sorted((r.succeeded, r.skipped, r.failed) for r in results) == [(0, 1, 0), (1, 0, 0)]
        assert await stock_of(product.id, primary.id) == 10
        assert [e.type for e in await ledger_entries(product.id)] == ["purchase"]
        refreshed = await purchasing.get_order(order.id)
        assert refreshed.items[0].received_quantity == 10
        assert refreshed.status == "received"

    @pytest.mark.asyncio
    async def test_partial_then_rest(self, purchasing, primary, make_product, stock_of, product_quantity):
        a = await make_product(name="A", quantity=0)
        b = await make_product(name="B", quantity=0)
        order = await purchasing.create_order(
            [OrderLine(a.id, 10, Decimal("1")), OrderLine(b.id, 6, Decimal("1"))]
        )
        lines = {i.product_id: i.id for i in order.items}

        result, partial = await purchasing.receive_order(order.id, {lines[a.id]: 4})

        assert (result.succeeded, result.skipped) == (1, 1)
        assert partial.status == "partial"
        assert {i.product_id: i.remaining_quantity for i in partial.items} == {a.id: 6, b.id: 6}

        result, done = await purchasing.receive_order(order.id)

        assert result.succeeded == 2
        assert done.status == "received"
        assert await stock_of(a.id, primary.id) == 10
        assert await product_quantity(b.id) == 6

    @pytest.mark.asyncio
    async def test_over_receiving_fails_only_that_line(self, purchasing, primary, make_product, stock_of):
        a = await make_product(name="A", quantity=0)
        b = await make_product(name="B", quantity=0)
        order = await purchasing.create_order(
            [OrderLine(a.id, 2, Decimal("1")), OrderLine(b.id, 3, Decimal("1"))]
        )
        lines = {i.product_id: i.id for i in order.items}

        result, after = await purchasing.receive_order(order.id, {lines[a.id]: 5, lines[b.id]: 3})

        assert (result.succeeded, result.failed) == (1, 1)
        assert result.failures[0].code == "invalid_quantity"
        assert result.failures[0].product_id == a.id
        assert not await stock_of(a.id, primary.id)
        assert await stock_of(b.id, primary.id) == 3
        assert after.status == "partial"


class TestPaymentsAndReturns:
    @pytest.mark.asyncio
    async def test_payment_against_order(self, purchasing, supplier, primary, make_product):
        product = await make_product(quantity=0)
        order = await purchasing.create_order(
            [OrderLine(product.id, 10, Decimal("2"))], supplier_id=supplier.id, payment_method="credit"
        )

        payment = await purchasing.record_payment(supplier.id, "15", order_id=order.id, reference="CHK-9")

        assert Decimal(payment.amount) == Decimal("15.00")
        refreshed = await purchasing.get_order(order.id)
        assert Decimal(refreshed.remaining_amount) == Decimal("5.00")
        assert refreshed.payment_status == "partial"
        assert await _balance(purchasing, supplier.id) == Decimal("5.00")

        with pytest.raises(InvalidAmountError):
            await purchasing.record_payment(supplier.id, "6", order_id=order.id)
        await purchasing.record_payment(supplier.id, "5")
        assert (await purchasing.get_order(order.id)).payment_status == "partial"
        assert await _balance(purchasing, supplier.id) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_non_positive_payment(self, purchasing, supplier):
        with pytest.raises(InvalidAmountError):
            await purchasing.record_payment(supplier.id, "0")

    @pytest.mark.asyncio
    async def test_supplier_return_deducts_stock(self, purchasing, supplier, primary, make_product, stock_of, ledger_entries):
        a = await make_product(name="A", quantity=10)
        b = await make_product(name="B", quantity=1)

        result, ret = await purchasing.create_return(
            supplier.id,
            [OrderLine(a.id, 4, Decimal("2")), OrderLine(b.id, 5, Decimal("1"))],
            reason="Damaged",
        )

        assert (result.succeeded, result.failed) == (1, 1)
        assert result.failures[0].code == "insufficient_stock"
        assert ret.return_number.startswith("RS-")
        assert Decimal(ret.total_amount) == Decimal("8.00")
        assert [(i.product_id, i.quantity) for i in ret.items] == [(a.id, 4)]
        assert await stock_of(a.id, primary.id) == 6
        assert await stock_of(b.id, primary.id) == 1
        assert (await ledger_entries(a.id))[-1].reference == ret.return_number
        # Returned goods are owed back by the supplier
        assert await _balance(purchasing, supplier.id) == Decimal("-8.00")

    @pytest.mark.asyncio
    async def test_return_with_no_valid_line_leaves_no_document(self, purchasing, supplier, primary, make_product):
        product = await make_product(quantity=0)

        result, ret = await purchasing.create_return(supplier.id, [OrderLine(product.id, 1, Decimal("1"))])

        assert ret is None
        assert result.failed == 1
