"""Order intake, reorders, item additions, staff and customer status changes and read views."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select, func, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.auth_utils import filter_by_principal
from laundryops.core.enums import OrderStatus, OrderPriority, ItemStatus, PaymentStatus, NotificationType
from laundryops.core.errors import ValidationError, NotFoundOrConflict, InternalError
from laundryops.models.directory import Store, Customer
from laundryops.models.order import Order, OrderItem, OrderStatusHistory, Payment
from laundryops.schemas.order import OrderCreate, OrderItemCreate, StatusChange, CancelRequest, ReorderRequest
from laundryops.schemas.principal import Principal
from laundryops.services.notifications import OrderEvent, schedule_order_event
from laundryops.services.order_numbers import create_with_order_number, generate_tag_number
from laundryops.services.order_store import (
    order_query, load_order, load_order_for, recompute_total, to_money,
)
from laundryops.services.payments import derive_payment_status
from laundryops.services.transitions import apply_transition, ensure_transition_allowed

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


def start_of_today() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def build_items(order_number: str, items: List[OrderItemCreate], start_index: int = 1) -> List[OrderItem]:
    built = []
    for offset, item in enumerate(items):
        unit_price = to_money(item.unit_price)
        built.append(OrderItem(
            tag_number=generate_tag_number(order_number, start_index + offset),
            item_name=item.item_name,
            service_name=item.service_name,
            quantity=item.quantity,
            unit_price=unit_price,
            subtotal=to_money(unit_price * item.quantity),
            status=ItemStatus.RECEIVED,
            sent_to_workshop=False,
            color=item.color,
            brand=item.brand,
            notes=item.notes,
        ))
    return built


async def _active_store(db: AsyncSession, business_id: int, store_id: int) -> Store:
    res = await db.execute(
        select(Store).where(Store.id == store_id, Store.business_id == business_id)
    )
    store = res.scalars().first()
    if not store or not store.is_active:
        raise ValidationError("Store not found or inactive")
    return store


async def _customer(db: AsyncSession, business_id: int, customer_id: int) -> Customer:
    res = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.business_id == business_id)
    )
    customer = res.scalars().first()
    if not customer:
        raise ValidationError("Customer not found")
    return customer


async def create_order(
    db: AsyncSession,
    principal: Principal,
    payload: OrderCreate,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    business_id = principal.business_id
    store = await _active_store(db, business_id, payload.store_id)
    await _customer(db, business_id, payload.customer_id)
    store_name = store.name

    async def persist(order_number: str) -> int:
        items = build_items(order_number, payload.items)
        total = sum((item.subtotal for item in items), Decimal("0"))
        order = Order(
            business_id=business_id,
            store_id=payload.store_id,
            customer_id=payload.customer_id,
            order_number=order_number,
            status=OrderStatus.PICKUP,
            payment_status=PaymentStatus.UNPAID,
            priority=payload.priority,
            total_amount=to_money(total),
            paid_amount=Decimal("0.00"),
            pickup_date=payload.pickup_date,
            delivery_date=payload.delivery_date,
            notes=payload.notes,
            items=items,
        )
        db.add(order)
        await db.commit()
        return order.id

    order_id = await create_with_order_number(db, business_id, store_name, persist)
    order = await load_order(db, business_id, order_id)
    logger.info(f"Order {order.order_number} created in business {business_id} with {len(order.items)} item(s)")

    if background_tasks is not None:
        schedule_order_event(background_tasks, OrderEvent.from_order(order, NotificationType.ORDER_CREATED))
    return order


async def add_items(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    items: List[OrderItemCreate],
    *,
    required_status: Optional[OrderStatus] = None,
    driver_id: Optional[int] = None,
) -> Order:
    """Append items and recompute totals.

    ``required_status`` and ``driver_id`` narrow the claim, so a driver adding items
    at the doorstep only succeeds while the order is still theirs to pick up.
    """
    order = await load_order(db, principal.business_id, order_id)
    if order.status.is_terminal:
        raise ValidationError(f"Cannot add items to a {order.status} order")

    claim = [
        Order.id == order_id,
        Order.business_id == principal.business_id,
        Order.status.notin_(TERMINAL_STATUSES),
    ]
    if required_status is not None:
        claim.append(Order.status == required_status)
    if driver_id is not None:
        claim.append(Order.driver_id == driver_id)

    try:
        # claim the row while it is still non-terminal
        claimed = await db.execute(
            update(Order)
            .where(*claim)
            .values(updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            raise NotFoundOrConflict("Order")

        res = await db.execute(select(func.count(OrderItem.id)).where(OrderItem.order_id == order_id))
        start_index = res.scalar_one() + 1
        for item in build_items(order.order_number, items, start_index):
            item.order_id = order_id
            db.add(item)
        await db.flush()

        await recompute_total(db, order_id)
        res = await db.execute(select(Order.total_amount, Order.paid_amount).where(Order.id == order_id))
        total_amount, paid_amount = res.one()
        await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(payment_status=derive_payment_status(paid_amount, total_amount))
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Adding items to order {order_id} failed: {e}")
        raise InternalError("Failed to add items") from e

    logger.info(f"Added {len(items)} item(s) to order {order_id}")
    return await load_order(db, principal.business_id, order_id)


async def change_status(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: StatusChange,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    if payload.status == OrderStatus.COMPLETED:
        order = await load_order(db, principal.business_id, order_id)
        due = to_money(order.total_amount) - to_money(order.paid_amount)
        if due > 0:
            raise ValidationError(f"Cannot complete order with outstanding balance of {due}")

    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        payload.expected_status,
        payload.status,
        principal.as_actor(),
        payload.notes,
        background_tasks=background_tasks,
    )


async def cancel_order(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: CancelRequest,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    expected = payload.expected_status
    if expected is None:
        order = await load_order(db, principal.business_id, order_id)
        expected = order.status
    ensure_transition_allowed(expected, OrderStatus.CANCELLED)

    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        expected,
        OrderStatus.CANCELLED,
        principal.as_actor(),
        payload.reason,
        background_tasks=background_tasks,
        operation="cancel",
    )


async def cancel_pickup(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    order = await load_order_for(db, principal, order_id)
    if order.status != OrderStatus.PICKUP:
        raise ValidationError(
            "Only pending pickup orders can be cancelled. Please contact the store for other orders."
        )

    return await apply_transition(
        db,
        principal.business_id,
        order_id,
        OrderStatus.PICKUP,
        OrderStatus.CANCELLED,
        principal.as_actor(),
        "Cancelled by customer via app",
        background_tasks=background_tasks,
        operation="cancel",
    )


def reorder_notes(previous: Order, payload: ReorderRequest) -> str:
    summary = ", ".join(
        f"{item.quantity}x {item.item_name}" + (f" ({item.service_name})" if item.service_name else "")
        for item in previous.items
    )
    lines = []
    if payload.pickup_address:
        lines.append(f"Pickup Address: {payload.pickup_address}")
    lines.append(f"Pickup Time: {payload.pickup_time_slot}")
    lines.append(f"Reorder from #{previous.order_number}")
    if summary:
        lines.append(f"Previous items: {summary}")
    return "\n".join(lines)


async def reorder(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: ReorderRequest,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    """Schedule a fresh pickup at the store of a previous order.

    Items are counted at the doorstep, so the new order starts empty.
    """
    previous = await load_order_for(db, principal, order_id)
    order_in = OrderCreate(
        store_id=previous.store_id,
        customer_id=previous.customer_id,
        priority=OrderPriority.NORMAL,
        pickup_date=payload.pickup_date,
        notes=reorder_notes(previous, payload),
    )
    order = await create_order(db, principal, order_in, background_tasks)
    logger.info(f"Order {order.order_number} reordered from {previous.order_number}")
    return order


async def list_orders(
    db: AsyncSession,
    principal: Principal,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    store_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Order]:
    q = filter_by_principal(order_query(), principal)

    if status:
        q = q.where(Order.status == status)
    if payment_status:
        q = q.where(Order.payment_status == payment_status)
    if store_id:
        q = q.where(Order.store_id == store_id)
    if customer_id:
        q = q.where(Order.customer_id == customer_id)
    if search:
        pattern = f"%{search}%"
        q = q.join(Customer, Customer.id == Order.customer_id).where(
            or_(Order.order_number.ilike(pattern), Customer.full_name.ilike(pattern))
        )

    q = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())


async def get_history(db: AsyncSession, principal: Principal, order_id: int) -> List[OrderStatusHistory]:
    await load_order_for(db, principal, order_id)
    res = await db.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.id)
    )
    return list(res.scalars().all())


async def order_stats(db: AsyncSession, principal: Principal) -> dict:
    business_id = principal.business_id
    today = start_of_today()

    res = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.business_id == business_id)
        .group_by(Order.status)
    )
    status_counts = {str(status): 0 for status in OrderStatus}
    for status, count in res.all():
        status_counts[str(status)] = count
    active_total = sum(
        count for status, count in status_counts.items() if not OrderStatus(status).is_terminal
    )

    res = await db.execute(
        select(func.count(OrderItem.id))
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.business_id == business_id, OrderItem.status == ItemStatus.AT_WORKSHOP)
    )
    workshop_items = res.scalar_one()

    res = await db.execute(
        select(func.count(Order.id)).where(Order.business_id == business_id, Order.created_at >= today)
    )
    today_orders = res.scalar_one()

    res = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0))
        .join(Order, Order.id == Payment.order_id)
        .where(Order.business_id == business_id, Payment.created_at >= today)
    )
    today_revenue = to_money(res.scalar_one())

    return {
        "status_counts": status_counts,
        "active_total": active_total,
        "workshop_items": workshop_items,
        "today_orders": today_orders,
        "today_revenue": float(today_revenue),
    }
