from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, get_tenant_id
from db.customer import Customer as CustomerModel
from db.database import get_async_session
from db.users import User
from schemas.customers import (
    CreditPaymentCreate,
    CreditPaymentRead,
    CreditTransactionRead,
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
)
from schemas.sales import SaleRead
from services.sales import SalesService

router = APIRouter()


@router.get("/", response_model=List[CustomerRead])
async def list_customers(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    res = await db.execute(
        select(CustomerModel)
        .where(CustomerModel.tenant_id == tenant_id)
        .order_by(func.lower(CustomerModel.name).asc())
    )
    return [CustomerRead(**c.to_schema) for c in res.scalars().all()]


@router.post("/", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    m = CustomerModel(tenant_id=tenant_id, credit_balance=0, **payload.model_dump())
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return CustomerRead(**m.to_schema)


@router.get("/{customer_id}", response_model=CustomerRead)
async def get_customer(
    customer_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return CustomerRead(**(await SalesService(db, tenant_id).get_customer(customer_id)).to_schema)


@router.patch("/{customer_id}", response_model=CustomerRead)
async def update_customer(
    customer_id: UUID,
    payload: CustomerUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    m = await SalesService(db, tenant_id).get_customer(customer_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        name = (data.pop("name") or "").strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name cannot be empty")
        m.name = name
    if data.get("credit_limit") is not None and data["credit_limit"] < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="credit_limit cannot be negative")
    for field, value in data.items():
        setattr(m, field, value)
    await db.commit()
    await db.refresh(m)
    return CustomerRead(**m.to_schema)


@router.get("/{customer_id}/credit-transactions", response_model=List[CreditTransactionRead])
async def list_credit_transactions(
    customer_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    rows = await SalesService(db, tenant_id).list_credit_transactions(customer_id)
    return [CreditTransactionRead(**t.to_schema) for t in rows]


@router.post("/{customer_id}/payments", response_model=CreditPaymentRead, status_code=status.HTTP_201_CREATED)
async def create_credit_payment(
    customer_id: UUID,
    payload: CreditPaymentCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    service = SalesService(db, tenant_id, user_id=user.id)
    entry, applied = await service.record_credit_payment(customer_id, payload.amount, payload.description)
    customer = await service.get_customer(customer_id)
    return CreditPaymentRead(
        transaction=CreditTransactionRead(**entry.to_schema),
        applied_amount=float(applied),
        customer=CustomerRead(**customer.to_schema),
    )


@router.get("/{customer_id}/sales", response_model=List[SaleRead])
async def list_customer_sales(
    customer_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    service = SalesService(db, tenant_id)
    await service.get_customer(customer_id)
    return [SaleRead(**s.to_schema) for s in await service.list_sales(customer_id=customer_id)]
