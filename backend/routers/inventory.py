import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user, get_tenant_id
from core.errors import DomainError
from db.database import get_async_session
from db.users import User
from schemas.inventory import (
    AppliedChangeOut,
    ChainReportOut,
    ProductStockOut,
    ProductStockUpsert,
    ResyncReportOut,
    StockAdjustToRequest,
    StockMovementCreate,
    StockTransactionOut,
    StockTransferCreate,
    TransferOut,
)
from services.stock_ledger import StockLedger
from services.stock_store import StockStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _stock_out(row, names=None) -> ProductStockOut:
    data = row.to_schema
    if names is not None:
        data["location_name"] = names.get(row.location_id)
    return ProductStockOut(**data)


@router.get("/product-stock", response_model=List[ProductStockOut])
async def list_product_stock(
    product_id: Optional[UUID] = Query(None),
    location_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    """
    Stock rows for a product (every location) or for a location (every product).
    """
    if product_id is None and location_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="product_id or location_id is required")

    store = StockStore(db, tenant_id)
    if product_id is not None:
        rows = await store.list_for_product(product_id)
        if location_id is not None:
            rows = [r for r in rows if r.location_id == location_id]
    else:
        rows = await store.list_for_location(location_id)
    names = {loc.id: loc.name for loc in await store.repo.list_locations()}
    return [_stock_out(r, names) for r in rows]


@router.get("/product-stock/low", response_model=List[ProductStockOut])
async def list_low_stock(
    location_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    store = StockStore(db, tenant_id)
    names = {loc.id: loc.name for loc in await store.repo.list_locations()}
    return [_stock_out(r, names) for r in await store.low_stock(location_id)]


@router.put("/product-stock/upsert", response_model=ProductStockOut)
async def upsert_product_stock(
    payload: ProductStockUpsert,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """
    Set a location's low-stock threshold and, when `quantity` is given, correct
    the quantity with an adjustment entry (no entry when it already matches).
    """
    store = StockStore(db, tenant_id, user_id=user.id)
    if payload.min_stock_level is not None:
        await store.set_min_stock_level(payload.product_id, payload.location_id, payload.min_stock_level)
    if payload.quantity is not None:
        await store.ledger.adjust_to(
            payload.product_id,
            payload.location_id,
            payload.quantity,
            reason=payload.reason or "Stock correction",
        )
    row = await store.get_row(payload.product_id, payload.location_id)
    return _stock_out(row)


@router.get("/stock-transactions", response_model=List[StockTransactionOut])
async def list_stock_transactions(
    product_id: Optional[UUID] = Query(None),
    location_id: Optional[UUID] = Query(None),
    type: Optional[str] = Query(None),
    related_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    ledger = StockLedger(db, tenant_id)
    rows = await ledger.repo.list_transactions(
        product_id=product_id, location_id=location_id, type=type, related_id=related_id, limit=limit
    )
    return [StockTransactionOut(**t.to_schema) for t in rows]


@router.post("/stock-transactions", response_model=AppliedChangeOut, status_code=status.HTTP_201_CREATED)
async def create_stock_transaction(
    payload: StockMovementCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """Record a manual entry / exit / adjustment; the stock rows follow from the ledger."""
    ledger = StockLedger(db, tenant_id, user_id=user.id)
    try:
        location = await ledger.resolve_location(payload.location_id)
        kwargs = {"reason": payload.reason, "reference": payload.reference}
        if payload.type == "entry":
            applied = await ledger.entry(payload.product_id, location.id, payload.quantity, **kwargs)
        elif payload.type == "exit":
            applied = await ledger.exit(payload.product_id, location.id, payload.quantity, **kwargs)
        else:
            applied = await ledger.adjust(payload.product_id, location.id, payload.quantity, **kwargs)
    except (DomainError, HTTPException):
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("failed to record %s movement for product %s", payload.type, payload.product_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create movement: {e}")
    return AppliedChangeOut(**applied.to_schema)


@router.post("/stock/transfers", response_model=TransferOut, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: StockTransferCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    ledger = StockLedger(db, tenant_id, user_id=user.id)
    try:
        outcome = await ledger.transfer(
            payload.product_id,
            payload.from_location_id,
            payload.to_location_id,
            payload.quantity,
            reason=payload.reason,
            reference=payload.reference,
        )
    except (DomainError, HTTPException):
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("failed to transfer product %s", payload.product_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create transfer: {e}")
    return TransferOut(
        success=True,
        message="Stock transferred successfully",
        related_id=outcome.related_id,
        transactions=[
            StockTransactionOut(**outcome.source.transaction.to_schema),
            StockTransactionOut(**outcome.destination.transaction.to_schema),
        ],
    )


@router.post("/stock/adjust-to", response_model=Optional[AppliedChangeOut])
async def adjust_to_quantity(
    payload: StockAdjustToRequest,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """Returns null when the location already holds that quantity."""
    ledger = StockLedger(db, tenant_id, user_id=user.id)
    applied = await ledger.adjust_to(payload.product_id, payload.location_id, payload.quantity, reason=payload.reason)
    return AppliedChangeOut(**applied.to_schema) if applied else None


@router.post("/stock/resync", response_model=ResyncReportOut)
async def resync_primary_quantities(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    report = await StockLedger(db, tenant_id, user_id=user.id).resync_primary_quantities()
    return ResyncReportOut(**report.as_dict())


@router.get("/stock/verify", response_model=ChainReportOut)
async def verify_ledger_chain(
    product_id: UUID = Query(...),
    location_id: UUID = Query(...),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    issues = await StockLedger(db, tenant_id).verify_chain(product_id, location_id)
    return ChainReportOut(product_id=product_id, location_id=location_id, ok=not issues, issues=issues)
