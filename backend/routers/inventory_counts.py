import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, get_tenant_id
from core.errors import DomainError
from db.database import get_async_session
from db.users import User
from schemas.counts import (
    CountCompletionRead,
    CountCreate,
    CountItemRead,
    CountItemUpdate,
    CountProgress,
    CountRead,
)
from schemas.inventory import WorkflowResultOut
from services.inventory_counts import InventoryCountService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[CountRead])
async def list_counts(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    counts = await InventoryCountService(db, tenant_id).list_counts(status_filter)
    return [CountRead(**c.to_schema) for c in counts]


@router.post("/", response_model=CountRead, status_code=status.HTTP_201_CREATED)
async def create_count(
    payload: CountCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    count = await InventoryCountService(db, tenant_id, user_id=user.id).create(
        payload.name, payload.location_id, payload.description
    )
    return CountRead(**count.to_schema)


@router.get("/{count_id}", response_model=CountRead)
async def get_count(
    count_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return CountRead(**(await InventoryCountService(db, tenant_id).get(count_id)).to_schema)


@router.get("/{count_id}/progress", response_model=CountProgress)
async def get_count_progress(
    count_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return CountProgress(**(await InventoryCountService(db, tenant_id).progress(count_id)))


@router.post("/{count_id}/start", response_model=CountRead)
async def start_count(
    count_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return CountRead(**(await InventoryCountService(db, tenant_id).start(count_id)).to_schema)


@router.post("/{count_id}/cancel", response_model=CountRead)
async def cancel_count(
    count_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    return CountRead(**(await InventoryCountService(db, tenant_id).cancel(count_id)).to_schema)


@router.patch("/{count_id}/items/{item_id}", response_model=CountItemRead)
async def record_count_item(
    count_id: UUID,
    item_id: UUID,
    payload: CountItemUpdate,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id),
):
    item = await InventoryCountService(db, tenant_id).record_actual(
        count_id, item_id, payload.actual_quantity, payload.notes
    )
    return CountItemRead(**item.to_schema)


@router.post("/{count_id}/complete", response_model=CountCompletionRead)
async def complete_count(
    count_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
    tenant_id: str = Depends(get_tenant_id),
):
    """
    Apply every counted variance to stock. When some items fail the count
    stays in progress; calling this again retries only those items.
    """
    service = InventoryCountService(db, tenant_id, user_id=user.id)
    try:
        result = await service.complete(count_id)
    except (DomainError, HTTPException):
        raise
    except Exception as e:
        await db.rollback()
        logger.exception("failed to complete inventory count %s", count_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to complete count: {e}")
    count = await service.get(count_id)
    return CountCompletionRead(count=CountRead(**count.to_schema), result=WorkflowResultOut(**result.as_dict()))
