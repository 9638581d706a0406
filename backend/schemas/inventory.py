from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator


MovementType = Literal["entry", "exit", "adjustment"]
TransactionType = Literal["entry", "exit", "adjustment", "transfer", "purchase", "sale", "count-adjustment"]


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class StockMovementCreate(BaseModel):
    # entry/exit: positive quantity; adjustment: signed non-zero delta
    product_id: UUID
    location_id: Optional[UUID] = None  # primary when omitted
    type: MovementType
    quantity: int
    reason: Optional[str] = None
    reference: Optional[str] = None

    @field_validator("reason", "reference")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StockTransferCreate(BaseModel):
    product_id: UUID
    from_location_id: UUID
    to_location_id: UUID
    quantity: int
    reason: Optional[str] = None
    reference: Optional[str] = None


class StockAdjustToRequest(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity: int
    reason: Optional[str] = None


class ProductStockUpsert(BaseModel):
    """Threshold update; with `quantity` the row is also corrected through the ledger."""
    product_id: UUID
    location_id: UUID
    min_stock_level: Optional[int] = None
    quantity: Optional[int] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _something_to_do(self):
        if self.min_stock_level is None and self.quantity is None:
            raise ValueError("min_stock_level or quantity is required")
        return self


class ProductStockOut(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity: int
    min_stock_level: int
    updated_at: Optional[datetime] = None
    location_name: Optional[str] = None


class StockTransactionOut(BaseModel):
    id: int
    product_id: UUID
    warehouse_id: UUID
    type: TransactionType
    quantity: int
    previous_quantity: int
    new_quantity: int
    reason: Optional[str] = None
    reference: Optional[str] = None
    related_id: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    created_at: datetime


class AppliedChangeOut(BaseModel):
    transaction: StockTransactionOut
    stock: ProductStockOut


class TransferOut(BaseModel):
    success: bool
    message: str
    related_id: Optional[str] = None
    transactions: List[StockTransactionOut] = []


class ResyncReportOut(BaseModel):
    created: int
    corrected: int
    unchanged: int


class ChainReportOut(BaseModel):
    product_id: UUID
    location_id: UUID
    ok: bool
    issues: List[str]


class WorkflowFailureOut(BaseModel):
    item_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    code: str
    message: str


class WorkflowResultOut(BaseModel):
    succeeded: int
    skipped: int
    failed: int
    failures: List[WorkflowFailureOut]
