from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

SalePaymentMethod = Literal["cash", "card", "credit"]
RefundMethod = Literal["cash", "credit"]


class CartLineCreate(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: Optional[float] = None  # product selling price when omitted


class CheckoutRequest(BaseModel):
    items: List[CartLineCreate]
    payment_method: SalePaymentMethod = "cash"
    paid_amount: Optional[float] = None
    customer_id: Optional[UUID] = None
    discount_amount: float = 0
    tax_amount: float = 0
    location_id: Optional[UUID] = None  # primary when omitted
    notes: Optional[str] = None

    @field_validator("items")
    @classmethod
    def _not_empty(cls, v: List[CartLineCreate]) -> List[CartLineCreate]:
        if not v:
            raise ValueError("the cart is empty")
        return v


class SaleItemRead(BaseModel):
    id: UUID
    product_id: UUID
    product_name: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float
    returned_quantity: int


class SaleRead(BaseModel):
    id: UUID
    invoice_number: str
    date: datetime
    customer_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    subtotal: float
    discount_amount: float
    tax_amount: float
    total_amount: float
    paid_amount: float
    change_amount: float
    payment_method: str
    status: str
    notes: Optional[str] = None
    items: List[SaleItemRead]


class ReceiptLineRead(BaseModel):
    name: str
    quantity: int
    unit_price: float
    total: float


class ReceiptRead(BaseModel):
    invoice_number: str
    date: datetime
    lines: List[ReceiptLineRead]
    subtotal: float
    discount: float
    tax: float
    total: float
    paid: float
    change: float
    payment_method: str
    customer_name: Optional[str] = None
    location_name: Optional[str] = None


class CheckoutRead(BaseModel):
    sale: SaleRead
    receipt: ReceiptRead


class ReturnLineCreate(BaseModel):
    sale_item_id: UUID
    quantity: int


class CustomerReturnCreate(BaseModel):
    items: List[ReturnLineCreate]
    refund_method: RefundMethod = "cash"
    reason: Optional[str] = None


class CustomerReturnItemRead(BaseModel):
    id: UUID
    sale_item_id: UUID
    product_id: UUID
    quantity: int
    amount: float


class CustomerReturnRead(BaseModel):
    id: UUID
    return_number: str
    sale_id: UUID
    customer_id: Optional[UUID] = None
    refund_method: str
    refund_amount: float
    reason: Optional[str] = None
    created_at: datetime
    items: List[CustomerReturnItemRead]
