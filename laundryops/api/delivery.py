from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from laundryops.db.session import get_db
from laundryops.schemas.order import OrderOut
from laundryops.schemas.delivery import DriverItemsAdd, DriverStatsOut
from laundryops.schemas.principal import Principal
from laundryops.core.security import require_driver
from laundryops.core.rate_limit import rate_limited
from laundryops.core.audit_decorator import audit_log
from laundryops.core.enums import AuditAction
from laundryops.core.response_builders import build_order_response, build_order_response_list
from laundryops.services import delivery as delivery_service
from laundryops.services.order_store import load_order_for

router = APIRouter(prefix="/delivery/orders", tags=["delivery"])


@router.get("", response_model=List[OrderOut])
async def list_assigned_orders(
    group: Optional[str] = Query(None, pattern="^(pickups|deliveries|completed)$"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    orders = await delivery_service.list_driver_orders(db, principal, group, limit, offset)
    return build_order_response_list(orders)


@router.get("/stats", response_model=DriverStatsOut)
async def driver_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    return await delivery_service.driver_stats(db, principal)


@router.get("/{order_id}", response_model=OrderOut)
async def get_assigned_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    order = await load_order_for(db, principal, order_id)
    return build_order_response(order)


@router.post("/{order_id}/pickup", response_model=OrderOut, dependencies=[Depends(rate_limited)])
@audit_log(AuditAction.DRIVER_PICKUP.value)
async def pickup(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    order = await delivery_service.pickup(db, principal, order_id, background_tasks)
    return build_order_response(order)


@router.post("/{order_id}/items", response_model=OrderOut, dependencies=[Depends(rate_limited)])
@audit_log(AuditAction.DRIVER_ADD_ITEMS.value)
async def add_items(
    order_id: int,
    payload: DriverItemsAdd,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    order = await delivery_service.add_items_at_pickup(db, principal, order_id, payload, background_tasks)
    return build_order_response(order)


@router.post("/{order_id}/start-delivery", response_model=OrderOut, dependencies=[Depends(rate_limited)])
@audit_log(AuditAction.DRIVER_START_DELIVERY.value)
async def start_delivery(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    order = await delivery_service.start_delivery(db, principal, order_id, background_tasks)
    return build_order_response(order)


@router.post("/{order_id}/deliver", response_model=OrderOut, dependencies=[Depends(rate_limited)])
@audit_log(AuditAction.DRIVER_DELIVER.value)
async def deliver(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_driver),
):
    order = await delivery_service.deliver(db, principal, order_id, background_tasks)
    return build_order_response(order)
