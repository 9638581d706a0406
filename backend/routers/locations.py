from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_superuser, get_tenant_id
from db.database import get_async_session
from db.users import User
from schemas.inventory import ResyncReportOut
from schemas.locations import LocationCreate, LocationRead, LocationUpdate, SetPrimaryResult
from services.locations import LocationService

router = APIRouter()


@router.get("/", response_model=List[LocationRead])
async def list_locations(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return [LocationRead(**loc.to_schema) for loc in await LocationService(db, tenant_id).list()]


@router.post("/", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: LocationCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    location = await LocationService(db, tenant_id, user_id=user.id).create(
        payload.name, payload.description, payload.is_primary
    )
    return LocationRead(**location.to_schema)


@router.patch("/{location_id}", response_model=LocationRead)
async def update_location(
    location_id: UUID,
    payload: LocationUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    location = await LocationService(db, tenant_id).update(location_id, payload.name, payload.description)
    return LocationRead(**location.to_schema)


@router.post("/{location_id}/set-primary", response_model=SetPrimaryResult)
async def set_primary_location(
    location_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    location, report = await LocationService(db, tenant_id, user_id=user.id).set_primary(location_id)
    return SetPrimaryResult(location=LocationRead(**location.to_schema), resync=ResyncReportOut(**report.as_dict()))


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(
    location_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
    tenant_id: str = Depends(get_tenant_id),
):
    await LocationService(db, tenant_id).delete(location_id)
