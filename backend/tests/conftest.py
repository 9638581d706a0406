"""
Shared fixtures: a throwaway SQLite database per test, a tenant with a
primary location, a product factory, and an HTTP client bound to the
offline app with the acting user overridden.
"""
import os

# Set test environment before importing app modules
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.auth import current_active_superuser, current_active_user
from db.database import Base, get_async_session, import_models
from db.inventory.stock import ProductStock
from db.inventory.transaction import StockTransaction
from db.product import Product
from db.users import User
from services.locations import LocationService
from services.products import ProductService

TENANT = "test-tenant"


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}")
    import_models()
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(db):
    u = User(
        email="cashier@example.com",
        hashed_password="not-used",
        is_active=True,
        is_superuser=True,
        is_verified=True,
        tenant_id=TENANT,
    )
    db.add(u)
    await db.commit()
    db.expunge(u)
    return u


@pytest_asyncio.fixture
async def primary(db):
    location = await LocationService(db, TENANT).create("Main Store")
    db.expunge(location)
    return location


@pytest_asyncio.fixture
async def warehouse(db, primary):
    location = await LocationService(db, TENANT).create("Warehouse")
    db.expunge(location)
    return location


@pytest.fixture
def make_product(db, primary):
    async def _make(name="Widget", quantity=0, price="10.00", min_stock_level=5, **extra):
        data = {"name": name, "selling_price": price, "cost_price": "6.00", "min_stock_level": min_stock_level}
        data.update(extra)
        product = await ProductService(db, TENANT).create(data, initial_quantity=quantity)
        # Detached snapshot: a rolled back mutation must not expire test fixtures
        db.expunge(product)
        return product

    return _make


@pytest.fixture
def stock_of(db):
    """Fresh read of a location row quantity (None when the row does not exist)."""
    async def _read(product_id, location_id):
        res = await db.execute(
            select(ProductStock.quantity).where(
                ProductStock.product_id == product_id, ProductStock.location_id == location_id
            )
        )
        return res.scalar_one_or_none()

    return _read


@pytest.fixture
def product_quantity(db):
    async def _read(product_id):
        res = await db.execute(select(Product.quantity).where(Product.id == product_id))
        return res.scalar_one()

    return _read


@pytest.fixture
def ledger_entries(db):
    async def _read(product_id, location_id=None):
        stmt = select(StockTransaction).where(StockTransaction.product_id == product_id)
        if location_id is not None:
            stmt = stmt.where(StockTransaction.warehouse_id == location_id)
        res = await db.execute(stmt.order_by(StockTransaction.id.asc()))
        return list(res.scalars().all())

    return _read


@pytest_asyncio.fixture
async def client(session_maker, user):
    from main import create_app

    app = create_app(offline=True)

    async def _session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[current_active_user] = lambda: user
    app.dependency_overrides[current_active_superuser] = lambda: user

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
