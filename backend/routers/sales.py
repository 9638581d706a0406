import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, get_tenant_id
from core.errors import DomainError
from db.database import get_async_session
from db.users import User
from schemas.sales import (
    CheckoutRead,
    CheckoutRequest,
    CustomerReturnCreate,
    CustomerReturnRead,
    ReceiptRead,
    SaleRead,
)
from services.sales import CartLine, ReturnLine, SalesService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[SaleRead])
async def list_sales(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return [SaleRead(**s.to_schema) for s in await SalesService(db, tenant_id).list_sales(limit=limit)]


@router.post("/", response_model=CheckoutRead, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """
    POS checkout. Payment and credit are checked before any stock moves; the
    cart is then deducted, recorded and charged in one transaction.
    """
    service = SalesService(db, tenant_id, user_id=user.id)
    try:
        sale, receipt = await service.checkout(
            [CartLine(product_id=i.product_id, quantity=i.quantity, unit_price=i.unit_price) for i in payload.items],
            payment_method=payload.payment_method,
            paid_amount=payload.paid_amount,
            customer_id=payload.customer_id,
            discount_amount=payload.discount_amount,
            tax_amount=payload.tax_amount,
            location_id=payload.location_id,
            notes=payload.notes,
        )
    except (DomainError, HTTPException):
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("checkout failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Checkout failed: {e}")
    return CheckoutRead(sale=SaleRead(**sale.to_schema), receipt=ReceiptRead(**receipt.as_dict()))


@router.get("/{sale_id}", response_model=SaleRead)
async def get_sale(
    sale_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return SaleRead(**(await SalesService(db, tenant_id).get_sale(sale_id)).to_schema)


@router.get("/{sale_id}/receipt", response_model=ReceiptRead)
async def get_receipt(
    sale_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return ReceiptRead(**(await SalesService(db, tenant_id).receipt(sale_id)).as_dict())


@router.post("/{sale_id}/returns", response_model=CustomerReturnRead, status_code=status.HTTP_201_CREATED)
async def create_customer_return(
    sale_id: UUID,
    payload: CustomerReturnCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    customer_return = await SalesService(db, tenant_id, user_id=user.id).create_return(
        sale_id,
        [ReturnLine(sale_item_id=i.sale_item_id, quantity=i.quantity) for i in payload.items],
        refund_method=payload.refund_method,
        reason=payload.reason,
    )
    return CustomerReturnRead(**customer_return.to_schema)
