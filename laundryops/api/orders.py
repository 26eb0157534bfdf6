from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from laundryops.db.session import get_db
from laundryops.schemas.order import (
    OrderCreate, OrderOut, OrderItemsAdd, StatusChange, CancelRequest, DriverAssignment,
    StatusHistoryOut, OrderStatsOut,
)
from laundryops.schemas.payment import PaymentCreate, PaymentSummaryOut
from laundryops.schemas.principal import Principal
from laundryops.schemas.workshop import WorkshopSend, WorkshopSendResult
from laundryops.core.security import require_staff, require_write_access
from laundryops.core.rate_limit import rate_limited
from laundryops.core.audit_decorator import audit_log
from laundryops.core.enums import OrderStatus, PaymentStatus, AuditAction
from laundryops.core.response_builders import (
    build_order_response, build_order_response_list, build_history_response_list,
    build_item_response, build_payment_summary,
)
from laundryops.services import orders as order_service
from laundryops.services import payments as payment_service
from laundryops.services import workshop as workshop_service
from laundryops.services import delivery as delivery_service
from laundryops.services.order_store import load_order_for
from laundryops.utils.idempotency import get_idempotent, set_idempotent, scoped_key

router = APIRouter(prefix="/orders", tags=["orders"])

WRITE = [Depends(require_write_access), Depends(rate_limited)]


@router.post("", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.CREATE_ORDER.value)
async def create_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    key = scoped_key(principal.business_id, principal.subject, idempotency_key) if idempotency_key else None
    if key:
        cached = await get_idempotent(key)
        if cached:
            return cached

    order = await order_service.create_order(db, principal, payload, background_tasks)
    response = build_order_response(order)

    if key:
        await set_idempotent(key, response.model_dump(mode="json"))
    return response


@router.get("", response_model=List[OrderOut])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    store_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    orders = await order_service.list_orders(
        db, principal, status, payment_status, store_id, customer_id, search, limit, offset,
    )
    return build_order_response_list(orders)


@router.get("/stats", response_model=OrderStatsOut)
async def order_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    return await order_service.order_stats(db, principal)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await load_order_for(db, principal, order_id)
    return build_order_response(order)


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
async def get_history(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    entries = await order_service.get_history(db, principal, order_id)
    return build_history_response_list(entries)


@router.post("/{order_id}/items", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.ADD_ITEMS.value)
async def add_items(
    order_id: int,
    payload: OrderItemsAdd,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await order_service.add_items(db, principal, order_id, payload.items)
    return build_order_response(order)


@router.post("/{order_id}/status", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.CHANGE_STATUS.value)
async def change_status(
    order_id: int,
    payload: StatusChange,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await order_service.change_status(db, principal, order_id, payload, background_tasks)
    return build_order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.CANCEL_ORDER.value)
async def cancel_order(
    order_id: int,
    payload: CancelRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await order_service.cancel_order(db, principal, order_id, payload, background_tasks)
    return build_order_response(order)


@router.post("/{order_id}/assign-driver", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.ASSIGN_DRIVER.value)
async def assign_driver(
    order_id: int,
    payload: DriverAssignment,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await delivery_service.assign_driver(db, principal, order_id, payload.driver_id)
    return build_order_response(order)


@router.post("/{order_id}/items/workshop", response_model=WorkshopSendResult, dependencies=WRITE)
@audit_log(AuditAction.SEND_TO_WORKSHOP.value)
async def send_to_workshop(
    order_id: int,
    payload: WorkshopSend,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order, skipped, updated = await workshop_service.send_to_workshop(db, principal, order_id, payload)
    requested = set(payload.item_ids)
    return WorkshopSendResult(
        order_id=order.id,
        order_status=order.status,
        items_requested=len(requested),
        items_updated=updated,
        skipped_item_ids=skipped,
        items=[build_item_response(item) for item in order.items if item.id in requested],
    )


@router.post("/{order_id}/payments", response_model=OrderOut, dependencies=WRITE)
@audit_log(AuditAction.RECORD_PAYMENT.value)
async def record_payment(
    order_id: int,
    payload: PaymentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order = await payment_service.record_payment(db, principal, order_id, payload, background_tasks)
    return build_order_response(order)


@router.get("/{order_id}/payments", response_model=PaymentSummaryOut)
async def list_payments(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_staff),
):
    order, payments = await payment_service.payment_summary(db, principal, order_id)
    return build_payment_summary(order, payments)
