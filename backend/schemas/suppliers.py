from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import WorkflowResultOut


class SupplierRead(BaseModel):
    id: UUID
    name: str
    contact: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    balance: float = 0


class SupplierCreate(BaseModel):
    name: str
    contact: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class SupplierPaymentCreate(BaseModel):
    amount: float
    payment_method: str = "cash"
    order_id: Optional[UUID] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class SupplierPaymentRead(BaseModel):
    id: UUID
    supplier_id: UUID
    order_id: Optional[UUID] = None
    amount: float
    payment_method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    payment_date: datetime


class SupplierReturnLine(BaseModel):
    product_id: UUID
    quantity: int
    unit_cost: float = 0


class SupplierReturnCreate(BaseModel):
    location_id: Optional[UUID] = None  # primary when omitted
    reason: Optional[str] = None
    items: List[SupplierReturnLine]

    @field_validator("items")
    @classmethod
    def _not_empty(cls, v: List[SupplierReturnLine]) -> List[SupplierReturnLine]:
        if not v:
            raise ValueError("at least one item is required")
        return v


class SupplierReturnRead(BaseModel):
    id: UUID
    return_number: str
    supplier_id: UUID
    location_id: Optional[UUID] = None
    reason: Optional[str] = None
    total_amount: float
    created_at: datetime


class SupplierReturnResultRead(BaseModel):
    # None when no line could be returned
    supplier_return: Optional[SupplierReturnRead] = None
    result: WorkflowResultOut
