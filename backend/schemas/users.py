from typing import Optional
from uuid import UUID

from fastapi_users import schemas


class UserRead(schemas.BaseUser[UUID]):
    full_name: Optional[str] = None
    tenant_id: str


class UserCreate(schemas.BaseUserCreate):
    full_name: Optional[str] = None
    # Omitted -> DEFAULT_TENANT_ID (column default)
    tenant_id: Optional[str] = None


class UserUpdate(schemas.BaseUserUpdate):
    full_name: Optional[str] = None
