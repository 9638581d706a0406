from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


class CustomerCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    credit_limit: float = 0
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("credit_limit")
    @classmethod
    def _limit(cls, v: float) -> float:
        if v < 0:
            raise ValueError("credit_limit cannot be negative")
        return v


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    credit_limit: Optional[float] = None
    notes: Optional[str] = None


class CustomerRead(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    credit_limit: float
    credit_balance: float
    available_credit: float
    notes: Optional[str] = None


class CreditPaymentCreate(BaseModel):
    amount: float
    description: Optional[str] = None


class CreditTransactionRead(BaseModel):
    id: UUID
    customer_id: UUID
    sale_id: Optional[UUID] = None
    type: str
    amount: float
    balance_after: float
    description: Optional[str] = None
    created_at: datetime


class CreditPaymentRead(BaseModel):
    transaction: CreditTransactionRead
    applied_amount: float
    customer: CustomerRead
