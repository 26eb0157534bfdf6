"""Driver assignment and the driver side of the order lifecycle.

Driver actions are transitions bound to the assigned driver: the compare-and-swap
includes ``driver_id``, so of two drivers racing on one order exactly one wins.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.enums import OrderStatus
from laundryops.core.errors import ValidationError, NotFoundOrConflict, InternalError
from laundryops.models.directory import Driver
from laundryops.models.order import Order
from laundryops.schemas.delivery import DriverItemsAdd
from laundryops.schemas.principal import Principal
from laundryops.services import orders as order_service
from laundryops.services.order_store import order_query, load_order, load_order_for
from laundryops.services.transitions import apply_transition

logger = logging.getLogger(__name__)

DELIVERABLE = (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY)

STATUS_GROUPS = {
    "pickups": (OrderStatus.PICKUP,),
    "deliveries": DELIVERABLE,
    "completed": (OrderStatus.COMPLETED,),
}


async def assign_driver(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    driver_id: Optional[int],
) -> Order:
    order = await load_order(db, principal.business_id, order_id)
    if order.status.is_terminal:
        raise ValidationError(f"Cannot assign a driver to a {order.status} order")

    if driver_id is not None:
        res = await db.execute(
            select(Driver).where(
                Driver.id == driver_id,
                Driver.business_id == principal.business_id,
                Driver.is_active.is_(True),
            )
        )
        if res.scalars().first() is None:
            raise ValidationError("Driver not found or inactive")

    assigned_at = datetime.now(timezone.utc) if driver_id is not None else None
    try:
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.business_id == principal.business_id,
                Order.status == order.status,
            )
            .values(driver_id=driver_id, assigned_at=assigned_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise NotFoundOrConflict("Order")
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Driver assignment on order {order_id} failed: {e}")
        raise InternalError("Failed to assign driver") from e

    if driver_id is None:
        logger.info(f"Driver unassigned from order {order_id}")
    else:
        logger.info(f"Driver {driver_id} assigned to order {order_id}")
    return await load_order(db, principal.business_id, order_id)


async def pickup(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        OrderStatus.PICKUP,
        OrderStatus.IN_PROGRESS,
        principal.as_actor(),
        driver_id=principal.driver_id,
        background_tasks=background_tasks,
        operation="pickup",
    )


async def add_items_at_pickup(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: DriverItemsAdd,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    order = await load_order_for(db, principal, order_id)
    if order.status != OrderStatus.PICKUP:
        logger.info(f"Driver {principal.driver_id} cannot add items to order {order_id} in status {order.status}")
        raise NotFoundOrConflict("Order")

    order = await order_service.add_items(
        db,
        principal,
        order_id,
        payload.items,
        required_status=OrderStatus.PICKUP,
        driver_id=principal.driver_id,
    )
    if not payload.mark_as_picked_up:
        return order

    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        OrderStatus.PICKUP,
        OrderStatus.IN_PROGRESS,
        principal.as_actor(),
        f"Picked up by driver. {len(payload.items)} item(s) received.",
        driver_id=principal.driver_id,
        background_tasks=background_tasks,
        operation="pickup",
    )


async def start_delivery(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        principal.as_actor(),
        driver_id=principal.driver_id,
        background_tasks=background_tasks,
        operation="start_delivery",
    )


async def deliver(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    order = await load_order_for(db, principal, order_id)
    if order.status not in DELIVERABLE:
        logger.info(f"Driver {principal.driver_id} cannot deliver order {order_id} in status {order.status}")
        raise NotFoundOrConflict("Order")

    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        order.status,
        OrderStatus.COMPLETED,
        principal.as_actor(),
        driver_id=principal.driver_id,
        extra_values={"delivered_at": datetime.now(timezone.utc)},
        background_tasks=background_tasks,
        operation="deliver",
    )


async def list_driver_orders(
    db: AsyncSession,
    principal: Principal,
    group: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Order]:
    q = order_query().where(
        Order.business_id == principal.business_id,
        Order.driver_id == principal.driver_id,
    )
    if group:
        q = q.where(Order.status.in_(STATUS_GROUPS[group]))
    q = q.order_by(Order.assigned_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())


async def driver_stats(db: AsyncSession, principal: Principal) -> dict:
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    def count(*criteria):
        return (
            select(func.count(Order.id))
            .where(
                Order.business_id == principal.business_id,
                Order.driver_id == principal.driver_id,
                *criteria,
            )
        )

    pending_pickups = (await db.execute(count(Order.status == OrderStatus.PICKUP))).scalar_one()
    pending_deliveries = (await db.execute(count(Order.status.in_(DELIVERABLE)))).scalar_one()
    completed_today = (await db.execute(
        count(Order.status == OrderStatus.COMPLETED, Order.completed_date >= today)
    )).scalar_one()
    total_completed = (await db.execute(count(Order.status == OrderStatus.COMPLETED))).scalar_one()

    return {
        "pending_pickups": pending_pickups,
        "pending_deliveries": pending_deliveries,
        "completed_today": completed_today,
        "total_completed": total_completed,
    }
