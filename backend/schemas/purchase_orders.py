from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import WorkflowResultOut

OrderStatus = Literal["pending", "partial", "received", "cancelled"]
PurchasePaymentMethod = Literal["cash", "credit", "bank_check"]


class PurchaseOrderItemCreate(BaseModel):
    product_id: UUID
    quantity: int
    unit_cost: float = 0


class PurchaseOrderCreate(BaseModel):
    supplier_id: Optional[UUID] = None
    warehouse_id: Optional[UUID] = None  # primary when omitted
    payment_method: PurchasePaymentMethod = "cash"
    paid_amount: float = 0
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate]

    @field_validator("items")
    @classmethod
    def _not_empty(cls, v: List[PurchaseOrderItemCreate]) -> List[PurchaseOrderItemCreate]:
        if not v:
            raise ValueError("at least one item is required")
        return v


class PurchaseOrderItemRead(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    unit_cost: float
    total_cost: float
    received_quantity: int
    remaining_quantity: int


class PurchaseOrderRead(BaseModel):
    id: UUID
    order_number: str
    supplier_id: Optional[UUID] = None
    warehouse_id: Optional[UUID] = None
    status: OrderStatus
    order_date: datetime
    received_date: Optional[datetime] = None
    subtotal: float
    total: float
    payment_method: str
    payment_status: str
    paid_amount: float
    remaining_amount: float
    notes: Optional[str] = None
    items: List[PurchaseOrderItemRead]


class ReceiveOrderRequest(BaseModel):
    # order item id -> quantity to receive now; omitted = everything outstanding
    quantities: Optional[Dict[UUID, int]] = None


class ReceiveOrderRead(BaseModel):
    order: PurchaseOrderRead
    result: WorkflowResultOut
