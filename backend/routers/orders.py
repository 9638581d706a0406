import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, current_active_user, get_tenant_id
from core.errors import DomainError
from db.database import get_async_session
from db.users import User
from schemas.inventory import WorkflowResultOut
from schemas.purchase_orders import (
    PurchaseOrderCreate,
    PurchaseOrderRead,
    ReceiveOrderRead,
    ReceiveOrderRequest,
)
from services.purchasing import OrderLine, PurchasingService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[PurchaseOrderRead])
async def list_purchase_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    supplier_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    orders = await PurchasingService(db, tenant_id).list_orders(status=status_filter, supplier_id=supplier_id)
    return [PurchaseOrderRead(**o.to_schema) for o in orders]


@router.post("/", response_model=PurchaseOrderRead, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    payload: PurchaseOrderCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    order = await PurchasingService(db, tenant_id, user_id=user.id).create_order(
        [OrderLine(product_id=i.product_id, quantity=i.quantity, unit_cost=i.unit_cost) for i in payload.items],
        supplier_id=payload.supplier_id,
        warehouse_id=payload.warehouse_id,
        payment_method=payload.payment_method,
        paid_amount=payload.paid_amount,
        notes=payload.notes,
    )
    return PurchaseOrderRead(**order.to_schema)


@router.get("/{order_id}", response_model=PurchaseOrderRead)
async def get_purchase_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return PurchaseOrderRead(**(await PurchasingService(db, tenant_id).get_order(order_id)).to_schema)


@router.post("/{order_id}/receive", response_model=ReceiveOrderRead)
async def receive_purchase_order(
    order_id: UUID,
    payload: Optional[ReceiveOrderRequest] = None,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """Receive outstanding quantities; receiving an already received order changes nothing."""
    service = PurchasingService(db, tenant_id, user_id=user.id)
    try:
        result, order = await service.receive_order(order_id, payload.quantities if payload else None)
    except (DomainError, HTTPException):
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("failed to receive purchase order %s", order_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to receive order: {e}")
    return ReceiveOrderRead(order=PurchaseOrderRead(**order.to_schema), result=WorkflowResultOut(**result.as_dict()))


@router.post("/{order_id}/cancel", response_model=PurchaseOrderRead)
async def cancel_purchase_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    return PurchaseOrderRead(**(await PurchasingService(db, tenant_id).cancel_order(order_id)).to_schema)
