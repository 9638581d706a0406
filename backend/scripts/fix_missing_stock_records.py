"""
Repair Product.quantity against the primary location and verify the ledger.

For every tenant (or the one given):
- products with no stock rows get a primary row from Product.quantity
- Product.quantity is corrected wherever it drifted from the primary row
- every (product, location) ledger chain is checked and breaks are printed

Run from backend/:
  python scripts/fix_missing_stock_records.py            # online (Postgres)
  python scripts/fix_missing_stock_records.py --offline  # local SQLite file
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import select

from core.logging_config import configure_logging
from db.database import (
    async_session_maker,
    create_db_and_tables,
    engine,
    offline_engine,
    offline_session_maker,
)
from db.inventory.location import StockLocation
from db.inventory.stock import ProductStock
from services.stock_ledger import StockLedger


async def repair_tenant(session_maker, tenant_id: str, verify: bool = True) -> int:
    """Returns the number of ledger chain issues found."""
    async with session_maker() as db:
        ledger = StockLedger(db, tenant_id)
        if await ledger.repo.get_primary_location() is None:
            print(f"[{tenant_id}] no primary location, skipped")
            return 0

        report = await ledger.resync_primary_quantities()
        print(
            f"[{tenant_id}] created={report.created} corrected={report.corrected} unchanged={report.unchanged}"
        )
        if not verify:
            return 0

        res = await db.execute(
            select(ProductStock.product_id, ProductStock.location_id).where(ProductStock.tenant_id == tenant_id)
        )
        issues_total = 0
        for product_id, location_id in res.all():
            issues = await ledger.verify_chain(product_id, location_id)
            for issue in issues:
                print(f"[{tenant_id}] product={product_id} location={location_id}: {issue}")
            issues_total += len(issues)
        return issues_total


async def main(offline: bool = False, tenant: str | None = None, verify: bool = True) -> None:
    configure_logging()
    session_maker = offline_session_maker if offline else async_session_maker
    await create_db_and_tables(offline_engine if offline else engine)

    if tenant:
        tenants = [tenant]
    else:
        async with session_maker() as db:
            res = await db.execute(select(StockLocation.tenant_id).distinct())
            tenants = sorted(t for (t,) in res.all())

    issues = 0
    for tenant_id in tenants:
        issues += await repair_tenant(session_maker, tenant_id, verify=verify)
    print(f"Done: {len(tenants)} tenant(s), {issues} ledger issue(s)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--offline", action="store_true", help="repair the local SQLite database")
    parser.add_argument("--tenant", default=None, help="only this tenant id")
    parser.add_argument("--no-verify", action="store_true", help="skip ledger chain verification")
    args = parser.parse_args()
    asyncio.run(main(offline=args.offline, tenant=args.tenant, verify=not args.no_verify))
