from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from laundryops.db.session import get_db
from laundryops.schemas.order import CustomerOrderCreate, OrderCreate, OrderOut, ReorderRequest
from laundryops.schemas.principal import Principal
from laundryops.core.security import require_customer, require_write_access
from laundryops.core.rate_limit import rate_limited
from laundryops.core.audit_decorator import audit_log
from laundryops.core.enums import OrderStatus, AuditAction
from laundryops.core.response_builders import build_order_response, build_order_response_list
from laundryops.services import orders as order_service
from laundryops.services.order_store import load_order_for

router = APIRouter(prefix="/customer/orders", tags=["customer"])


@router.post(
    "",
    response_model=OrderOut,
    dependencies=[Depends(require_write_access), Depends(rate_limited)],
)
@audit_log(AuditAction.CREATE_ORDER.value)
async def create_order(
    payload: CustomerOrderCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    order_in = OrderCreate(customer_id=principal.customer_id, **payload.model_dump())
    order = await order_service.create_order(db, principal, order_in, background_tasks)
    return build_order_response(order)


@router.get("", response_model=List[OrderOut])
async def list_my_orders(
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    orders = await order_service.list_orders(db, principal, status=status, limit=limit, offset=offset)
    return build_order_response_list(orders)


@router.get("/{order_id}", response_model=OrderOut)
async def get_my_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    order = await load_order_for(db, principal, order_id)
    return build_order_response(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderOut,
    dependencies=[Depends(require_write_access), Depends(rate_limited)],
)
@audit_log(AuditAction.CUSTOMER_CANCEL.value)
async def cancel_pickup(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    order = await order_service.cancel_pickup(db, principal, order_id, background_tasks)
    return build_order_response(order)


@router.post(
    "/{order_id}/reorder",
    response_model=OrderOut,
    dependencies=[Depends(require_write_access), Depends(rate_limited)],
)
@audit_log(AuditAction.REORDER.value)
async def reorder(
    order_id: int,
    payload: ReorderRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    order = await order_service.reorder(db, principal, order_id, payload, background_tasks)
    return build_order_response(order)
