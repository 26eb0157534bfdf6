from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from laundryops.db.session import get_db
from laundryops.schemas.principal import Principal
from laundryops.schemas.workshop import WorkshopItemAction, WorkshopItemOut, WorkshopListOut, WorkshopStats
from laundryops.core.security import require_staff, require_write_access
from laundryops.core.rate_limit import rate_limited
from laundryops.core.audit_decorator import audit_log
from laundryops.core.enums import WorkshopTab, AuditAction
from laundryops.core.response_builders import build_workshop_item_response
from laundryops.services import workshop as workshop_service

router = APIRouter(prefix="/workshop", tags=["workshop"])


@router.get("", response_model=WorkshopListOut)
async def list_workshop_items(
    tab: WorkshopTab = Query(WorkshopTab.PROCESSING),
    store_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    rows = await workshop_service.list_workshop_items(db, principal, tab, store_id)
    stats = await workshop_service.workshop_stats(db, principal, store_id)
    return WorkshopListOut(
        items=[build_workshop_item_response(item, order) for item, order in rows],
        stats=WorkshopStats(**stats),
    )


@router.patch(
    "/{item_id}",
    response_model=WorkshopItemOut,
    dependencies=[Depends(require_write_access), Depends(rate_limited)],
)
@audit_log(AuditAction.WORKSHOP_ITEM.value)
async def update_workshop_item(
    item_id: int,
    payload: WorkshopItemAction,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    item, order = await workshop_service.apply_item_action(db, principal, item_id, payload, background_tasks)
    return build_workshop_item_response(item, order)
