from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import ResyncReportOut


class LocationCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_primary: bool = False

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v


class LocationUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class LocationRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_primary: bool


class SetPrimaryResult(BaseModel):
    location: LocationRead
    resync: ResyncReportOut
