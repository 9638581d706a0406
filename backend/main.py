import argparse
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.auth import auth_backend, fastapi_users
from core.config import settings
from core.errors import register_error_handlers
from core.logging_config import configure_logging
from db.database import create_db_and_tables, engine, get_async_session, get_offline_session, offline_engine
from routers.customers import router as customers_router
from routers.inventory import router as inventory_router
from routers.inventory_counts import router as inventory_counts_router
from routers.locations import router as locations_router
from routers.orders import router as orders_router
from routers.products import router as products_router
from routers.sales import router as sales_router
from routers.suppliers import router as suppliers_router
from schemas.users import UserCreate, UserRead, UserUpdate

configure_logging()


def create_app(offline: bool = False) -> FastAPI:
    """
    Build the API. The online app talks to Postgres under /api; the offline
    app serves the same routes under /api/offline from the local SQLite file.
    """
    target_engine = offline_engine if offline else engine
    prefix = "/api/offline" if offline else "/api"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await create_db_and_tables(target_engine)
        yield

    app = FastAPI(
        title="StockSage Offline API" if offline else "StockSage API",
        description="Point-of-sale inventory: multi-location stock, ledger, counts, purchasing and sales",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    if offline:
        app.dependency_overrides[get_async_session] = get_offline_session

    # Authentication routes (fastapi-users)
    app.include_router(fastapi_users.get_auth_router(auth_backend), prefix=f"{prefix}/auth/jwt", tags=["auth"])
    app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix=f"{prefix}/users", tags=["users"])

    # Catalog and locations
    app.include_router(products_router, prefix=f"{prefix}/products", tags=["products"])
    app.include_router(locations_router, prefix=f"{prefix}/stock-locations", tags=["stock-locations"])

    # Stock rows, ledger, movements
    app.include_router(inventory_router, prefix=prefix, tags=["stock"])
    app.include_router(inventory_counts_router, prefix=f"{prefix}/inventory-counts", tags=["inventory-counts"])

    # Purchasing and sales
    app.include_router(suppliers_router, prefix=f"{prefix}/suppliers", tags=["suppliers"])
    app.include_router(orders_router, prefix=f"{prefix}/purchase-orders", tags=["purchase-orders"])
    app.include_router(customers_router, prefix=f"{prefix}/customers", tags=["customers"])
    app.include_router(sales_router, prefix=f"{prefix}/sales", tags=["sales"])

    return app


app = create_app()
offline_app = create_app(offline=True)

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the StockSage API")
    parser.add_argument("--offline", action="store_true", help="serve the offline (SQLite) API")
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "main:offline_app" if args.offline else "main:app",
        host=settings.api_host,
        port=settings.offline_api_port if args.offline else settings.api_port,
        reload=args.reload,
    )
