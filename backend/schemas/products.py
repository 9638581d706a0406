from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import ProductStockOut

StockStatus = Literal["in_stock", "low_stock", "out_of_stock"]


class ProductCreate(BaseModel):
    name: str
    barcode: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cost_price: float = 0
    selling_price: float = 0
    min_stock_level: Optional[int] = None
    unit: Optional[str] = "piece"
    # Booked as an "Initial stock" entry at the primary location
    initial_quantity: int = 0

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("cost_price", "selling_price")
    @classmethod
    def _price(cls, v: float) -> float:
        if v < 0:
            raise ValueError("price cannot be negative")
        return v


class ProductUpdate(BaseModel):
    # No quantity here: stock changes go through /stock
    name: Optional[str] = None
    barcode: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    min_stock_level: Optional[int] = None
    unit: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class ProductRead(BaseModel):
    id: UUID
    name: str
    barcode: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cost_price: float
    selling_price: float
    quantity: int
    min_stock_level: Optional[int] = None
    unit: Optional[str] = None
    active: bool
    stock_status: StockStatus


class ProductStockOverview(BaseModel):
    product: ProductRead
    locations: List[ProductStockOut]
    total: int
