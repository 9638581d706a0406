from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import WorkflowResultOut

CountStatus = Literal["draft", "in_progress", "completed", "cancelled"]


class CountCreate(BaseModel):
    name: str
    location_id: UUID
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v


class CountItemUpdate(BaseModel):
    actual_quantity: int
    notes: Optional[str] = None


class CountItemRead(BaseModel):
    id: UUID
    count_id: UUID
    product_id: UUID
    product_name: Optional[str] = None
    expected_quantity: int
    actual_quantity: Optional[int] = None
    variance: Optional[int] = None
    reconciled: bool
    notes: Optional[str] = None


class CountRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    location_id: UUID
    status: CountStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    total_items: int
    counted_items: int
    progress_percent: int
    items: List[CountItemRead]


class CountProgress(BaseModel):
    total: int
    counted: int
    percent: int


class CountCompletionRead(BaseModel):
    count: CountRead
    result: WorkflowResultOut
