import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, get_tenant_id
from db.database import get_async_session
from db.supplier import Supplier as SupplierModel, SupplierPayment as SupplierPaymentModel
from db.users import User
from schemas.inventory import WorkflowResultOut
from schemas.suppliers import (
    SupplierCreate,
    SupplierPaymentCreate,
    SupplierPaymentRead,
    SupplierRead,
    SupplierReturnCreate,
    SupplierReturnRead,
    SupplierReturnResultRead,
    SupplierUpdate,
)
from services.purchasing import OrderLine, PurchasingService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_supplier(db: AsyncSession, tenant_id: str, supplier_id: UUID) -> SupplierModel:
    res = await db.execute(
        select(SupplierModel).where(SupplierModel.id == supplier_id, SupplierModel.tenant_id == tenant_id)
    )
    m = res.scalar_one_or_none()
    if not m:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    return m


@router.get("/", response_model=List[SupplierRead])
async def list_suppliers(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    res = await db.execute(
        select(SupplierModel)
        .where(SupplierModel.tenant_id == tenant_id)
        .order_by(func.lower(SupplierModel.name).asc())
    )
    items = res.scalars().all()
    return [SupplierRead(**s.to_schema) for s in items]


@router.post("/", response_model=SupplierRead, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    payload: SupplierCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")

    existing = await db.execute(
        select(SupplierModel).where(
            SupplierModel.tenant_id == tenant_id, func.lower(SupplierModel.name) == name.lower()
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Supplier already exists")

    m = SupplierModel(
        tenant_id=tenant_id,
        name=name,
        contact=payload.contact,
        phone=payload.phone,
        email=payload.email,
        notes=payload.notes,
    )
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return SupplierRead(**m.to_schema)


@router.patch("/{supplier_id}", response_model=SupplierRead)
async def update_supplier(
    supplier_id: UUID,
    payload: SupplierUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    m = await _get_supplier(db, tenant_id, supplier_id)

    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        m.name = data["name"].strip()
    for field in ("contact", "phone", "email", "notes"):
        if field in data:
            setattr(m, field, data[field])

    await db.commit()
    await db.refresh(m)
    return SupplierRead(**m.to_schema)


@router.get("/{supplier_id}/payments", response_model=List[SupplierPaymentRead])
async def list_supplier_payments(
    supplier_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    await _get_supplier(db, tenant_id, supplier_id)
    res = await db.execute(
        select(SupplierPaymentModel)
        .where(SupplierPaymentModel.tenant_id == tenant_id, SupplierPaymentModel.supplier_id == supplier_id)
        .order_by(SupplierPaymentModel.payment_date.desc())
    )
    return [SupplierPaymentRead(**p.to_schema) for p in res.scalars().all()]


@router.post("/{supplier_id}/payments", response_model=SupplierPaymentRead, status_code=status.HTTP_201_CREATED)
async def create_supplier_payment(
    supplier_id: UUID,
    payload: SupplierPaymentCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    payment = await PurchasingService(db, tenant_id, user_id=user.id).record_payment(
        supplier_id,
        payload.amount,
        payment_method=payload.payment_method,
        order_id=payload.order_id,
        reference=payload.reference,
        notes=payload.notes,
    )
    return SupplierPaymentRead(**payment.to_schema)


@router.post("/{supplier_id}/returns", response_model=SupplierReturnResultRead, status_code=status.HTTP_201_CREATED)
async def create_supplier_return(
    supplier_id: UUID,
    payload: SupplierReturnCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    result, supplier_return = await PurchasingService(db, tenant_id, user_id=user.id).create_return(
        supplier_id,
        [OrderLine(product_id=i.product_id, quantity=i.quantity, unit_cost=i.unit_cost) for i in payload.items],
        location_id=payload.location_id,
        reason=payload.reason,
    )
    return SupplierReturnResultRead(
        supplier_return=SupplierReturnRead(**supplier_return.to_schema) if supplier_return else None,
        result=WorkflowResultOut(**result.as_dict()),
    )
