import argparse
import asyncio
import sys
from pathlib import Path

"""
Seed demo data (admin user, locations, products, supplier, customer).

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py [--offline]`
- repo root: `python backend/scripts/seed_demo_data.py [--offline]`

Stock is booked through the ledger, so the seeded quantities come with
"Initial stock" entries.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.config import settings
from core.logging_config import configure_logging
from db.customer import Customer
from db.database import (
    async_session_maker,
    create_db_and_tables,
    engine,
    offline_engine,
    offline_session_maker,
)
from db.inventory.location import StockLocation
from db.product import Product
from db.supplier import Supplier
from db.users import User
from services.locations import LocationService
from services.products import ProductService

from fastapi_users.password import PasswordHelper


password_helper = PasswordHelper()

DEMO_PRODUCTS = [
    # name, barcode, category, cost, price, initial quantity
    ("Mineral Water 1.5L", "6130000000011", "Drinks", "2.50", "4.00", 120),
    ("Orange Juice 1L", "6130000000028", "Drinks", "6.00", "9.50", 40),
    ("Olive Oil 1L", "6130000000035", "Grocery", "38.00", "52.00", 15),
    ("Couscous 1kg", "6130000000042", "Grocery", "9.00", "13.00", 60),
    ("Black Tea 250g", "6130000000059", "Grocery", "11.00", "16.50", 8),
    ("Dish Soap 750ml", "6130000000066", "Household", "7.50", "11.00", 0),
]


async def get_or_create_user(session, email: str, password: str, tenant_id: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        email=email,
        hashed_password=password_helper.hash(password),
        is_active=True,
        is_superuser=True,
        is_verified=True,
        full_name="Demo Admin",
        tenant_id=tenant_id,
    )
    session.add(user)
    await session.commit()
    return user


async def get_or_create_location(session, tenant_id: str, name: str, is_primary: bool) -> StockLocation:
    result = await session.execute(
        select(StockLocation).where(
            StockLocation.tenant_id == tenant_id, func.lower(StockLocation.name) == name.lower()
        )
    )
    location = result.scalar_one_or_none()
    if location:
        return location
    return await LocationService(session, tenant_id).create(name, is_primary=is_primary)


async def main(offline: bool = False) -> None:
    configure_logging()
    tenant_id = settings.default_tenant_id
    await create_db_and_tables(offline_engine if offline else engine)
    session_maker = offline_session_maker if offline else async_session_maker

    async with session_maker() as session:
        user = await get_or_create_user(session, "admin@example.com", "admin123", tenant_id)

        await get_or_create_location(session, tenant_id, "Main Store", is_primary=True)
        await get_or_create_location(session, tenant_id, "Back Warehouse", is_primary=False)

        products = ProductService(session, tenant_id, user_id=user.id)
        created = 0
        for name, barcode, category, cost, price, qty in DEMO_PRODUCTS:
            exists = await session.execute(
                select(Product).where(Product.tenant_id == tenant_id, Product.barcode == barcode)
            )
            if exists.scalar_one_or_none():
                continue
            await products.create(
                {
                    "name": name,
                    "barcode": barcode,
                    "category": category,
                    "cost_price": cost,
                    "selling_price": price,
                },
                initial_quantity=qty,
            )
            created += 1

        res = await session.execute(select(Supplier).where(Supplier.tenant_id == tenant_id))
        if not res.scalars().first():
            session.add(Supplier(tenant_id=tenant_id, name="Atlas Distribution", contact="Karim", phone="0522000000"))
        res = await session.execute(select(Customer).where(Customer.tenant_id == tenant_id))
        if not res.scalars().first():
            session.add(Customer(tenant_id=tenant_id, name="Hotel Zitoun", credit_limit=5000, credit_balance=0))
        await session.commit()

    print(f"Seeded tenant '{tenant_id}': {created} new product(s). Login: admin@example.com / admin123")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--offline", action="store_true", help="seed the local SQLite database")
    args = parser.parse_args()
    asyncio.run(main(offline=args.offline))
