from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user, get_tenant_id
from db.database import get_async_session
from db.users import User
from schemas.products import ProductCreate, ProductRead, ProductStockOverview, ProductUpdate
from services.products import ProductService

router = APIRouter()


@router.get("/", response_model=List[ProductRead])
async def list_products(
    search: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    products = await ProductService(db, tenant_id).list(
        search=search, low_stock=low_stock, include_inactive=include_inactive
    )
    return [ProductRead(**p.to_schema) for p in products]


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    data = payload.model_dump(exclude={"initial_quantity"})
    product = await ProductService(db, tenant_id, user_id=user.id).create(data, payload.initial_quantity)
    return ProductRead(**product.to_schema)


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return ProductRead(**(await ProductService(db, tenant_id).get(product_id)).to_schema)


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    product = await ProductService(db, tenant_id).update(product_id, payload.model_dump(exclude_unset=True))
    return ProductRead(**product.to_schema)


@router.delete("/{product_id}", response_model=ProductRead)
async def deactivate_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    """Products keep their ledger history, so delete only deactivates."""
    product = await ProductService(db, tenant_id).deactivate(product_id)
    return ProductRead(**product.to_schema)


@router.get("/{product_id}/stock", response_model=ProductStockOverview)
async def product_stock_overview(
    product_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return ProductStockOverview(**(await ProductService(db, tenant_id).stock_overview(product_id)))
