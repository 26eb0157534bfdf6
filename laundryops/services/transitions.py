"""Order status transition engine.

Every order-level status change goes through ``apply_transition``. The update is a
compare-and-swap on the persisted status (and, for driver actions, the assigned
driver), so a request that lost a race sees zero affected rows and fails with
NotFoundOrConflict instead of overwriting a state it never observed. The status
update, item mirroring and the history row commit together.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional, Tuple

from fastapi import BackgroundTasks
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.enums import OrderStatus, ItemStatus
from laundryops.core.errors import InvalidTransition, NotFoundOrConflict, ValidationError, InternalError
from laundryops.core.metrics import order_transitions, order_transition_conflicts
from laundryops.models.order import Order, OrderItem, OrderStatusHistory
from laundryops.schemas.principal import Actor
from laundryops.services.notifications import OrderEvent, schedule_order_event
from laundryops.services.order_store import load_order

logger = logging.getLogger(__name__)

S = OrderStatus

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PICKUP: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.AT_WORKSHOP, S.READY, S.CANCELLED}),
    S.AT_WORKSHOP: frozenset({S.WORKSHOP_RETURNED, S.IN_PROGRESS, S.CANCELLED}),
    S.WORKSHOP_RETURNED: frozenset({S.READY, S.IN_PROGRESS, S.AT_WORKSHOP, S.CANCELLED}),
    S.READY: frozenset({S.OUT_FOR_DELIVERY, S.COMPLETED, S.IN_PROGRESS, S.AT_WORKSHOP, S.CANCELLED}),
    S.OUT_FOR_DELIVERY: frozenset({S.COMPLETED, S.READY, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# target -> (item statuses that follow the order, the status they move to)
ITEM_MIRROR: Dict[OrderStatus, Tuple[FrozenSet[ItemStatus], ItemStatus]] = {
    S.IN_PROGRESS: (
        frozenset({ItemStatus.RECEIVED, ItemStatus.AT_WORKSHOP, ItemStatus.WORKSHOP_RETURNED, ItemStatus.READY}),
        ItemStatus.IN_PROGRESS,
    ),
    S.AT_WORKSHOP: (
        frozenset({ItemStatus.RECEIVED, ItemStatus.IN_PROGRESS, ItemStatus.WORKSHOP_RETURNED, ItemStatus.READY}),
        ItemStatus.AT_WORKSHOP,
    ),
    S.WORKSHOP_RETURNED: (frozenset({ItemStatus.AT_WORKSHOP}), ItemStatus.WORKSHOP_RETURNED),
    S.READY: (
        frozenset({ItemStatus.RECEIVED, ItemStatus.IN_PROGRESS, ItemStatus.WORKSHOP_RETURNED}),
        ItemStatus.READY,
    ),
    S.COMPLETED: (frozenset(set(ItemStatus) - {ItemStatus.COMPLETED}), ItemStatus.COMPLETED),
}

DEFAULT_WORKSHOP_PARTNER = "External Workshop"

# targets that require every item back from the workshop
WORKSHOP_CLEAR_TARGETS = frozenset({S.READY, S.OUT_FOR_DELIVERY, S.COMPLETED})

DEFAULT_NOTES = {
    (S.PICKUP, S.IN_PROGRESS): "Items picked up from customer and received at store",
    (S.PICKUP, S.CANCELLED): "Pickup request cancelled",
    (S.IN_PROGRESS, S.READY): "Processing completed, order ready for customer",
    (S.IN_PROGRESS, S.AT_WORKSHOP): "Order sent to external workshop",
    (S.IN_PROGRESS, S.CANCELLED): "Order cancelled during processing",
    (S.AT_WORKSHOP, S.WORKSHOP_RETURNED): "Order received back from workshop",
    (S.AT_WORKSHOP, S.IN_PROGRESS): "Recalled from workshop, processing in-house",
    (S.AT_WORKSHOP, S.CANCELLED): "Order cancelled while at workshop",
    (S.WORKSHOP_RETURNED, S.READY): "Quality check passed, order ready for customer",
    (S.WORKSHOP_RETURNED, S.IN_PROGRESS): "Quality check failed, sent back for rework",
    (S.WORKSHOP_RETURNED, S.AT_WORKSHOP): "Sent back to workshop for corrections",
    (S.READY, S.OUT_FOR_DELIVERY): "Order dispatched for home delivery",
    (S.READY, S.COMPLETED): "Customer collected order",
    (S.READY, S.IN_PROGRESS): "Order sent back for additional processing",
    (S.READY, S.AT_WORKSHOP): "Order sent to workshop for reprocessing",
    (S.READY, S.CANCELLED): "Order cancelled before delivery",
    (S.OUT_FOR_DELIVERY, S.COMPLETED): "Order delivered to customer",
    (S.OUT_FOR_DELIVERY, S.READY): "Delivery attempt failed, order returned to store",
}


def _check_graph() -> None:
    missing = set(OrderStatus) - set(ALLOWED_TRANSITIONS)
    if missing:
        raise RuntimeError(f"Transition table has no entry for {sorted(missing)}")
    for current, targets in ALLOWED_TRANSITIONS.items():
        if current.is_terminal and targets:
            raise RuntimeError(f"Terminal status {current} must not have outgoing transitions")
        if not current.is_terminal and S.CANCELLED not in targets:
            raise RuntimeError(f"{current} must allow cancellation")
        if current in targets:
            raise RuntimeError(f"{current} must not transition to itself")


_check_graph()


def allowed_targets(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return ALLOWED_TRANSITIONS[current]


def is_transition_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition_allowed(current: OrderStatus, target: OrderStatus) -> None:
    if not is_transition_allowed(current, target):
        raise InvalidTransition(current, target)


def default_status_note(current: OrderStatus, target: OrderStatus) -> str:
    return DEFAULT_NOTES.get((current, target), f"Status changed from {current} to {target}")


def timestamp_updates(current: OrderStatus, target: OrderStatus, now: datetime) -> dict:
    values = {}
    if current == S.PICKUP and target == S.IN_PROGRESS:
        values["picked_up_at"] = now
    if target == S.COMPLETED:
        values["completed_date"] = now
    return values


def item_mirror_values(target: OrderStatus, now: datetime) -> dict:
    """Extra item columns written alongside the mirrored status."""
    if target == S.AT_WORKSHOP:
        return {
            "sent_to_workshop": True,
            "workshop_partner_name": DEFAULT_WORKSHOP_PARTNER,
            "workshop_sent_at": now,
            "workshop_returned_at": None,
        }
    if target == S.WORKSHOP_RETURNED:
        return {"workshop_returned_at": now}
    return {}


def no_items_at_workshop():
    return ~(
        select(OrderItem.id)
        .where(OrderItem.order_id == Order.id, OrderItem.status == ItemStatus.AT_WORKSHOP)
        .exists()
    )


async def count_items_at_workshop(db: AsyncSession, business_id: int, order_id: int) -> int:
    res = await db.execute(
        select(func.count(OrderItem.id))
        .join(Order, Order.id == OrderItem.order_id)
        .where(
            Order.id == order_id,
            Order.business_id == business_id,
            OrderItem.status == ItemStatus.AT_WORKSHOP,
        )
    )
    return res.scalar_one()


async def apply_transition(
    db: AsyncSession,
    business_id: int,
    order_id: int,
    expected_status: OrderStatus,
    target_status: OrderStatus,
    actor: Actor,
    notes: Optional[str] = None,
    *,
    driver_id: Optional[int] = None,
    extra_values: Optional[dict] = None,
    background_tasks: Optional[BackgroundTasks] = None,
    operation: str = "status_change",
) -> Order:
    ensure_transition_allowed(expected_status, target_status)

    now = datetime.now(timezone.utc)
    values = {"status": target_status, **timestamp_updates(expected_status, target_status, now)}
    values.update(extra_values or {})

    stmt = update(Order).where(
        Order.id == order_id,
        Order.business_id == business_id,
        Order.status == expected_status,
    )
    if driver_id is not None:
        stmt = stmt.where(Order.driver_id == driver_id)
    guarded = target_status in WORKSHOP_CLEAR_TARGETS
    if guarded:
        stmt = stmt.where(no_items_at_workshop())

    try:
        result = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            await db.rollback()
            at_workshop = await count_items_at_workshop(db, business_id, order_id) if guarded else 0
            if at_workshop:
                raise ValidationError(
                    f"Cannot move order to {target_status}: {at_workshop} item(s) still at workshop"
                )
            order_transition_conflicts.labels(operation=operation).inc()
            logger.info(
                f"Transition {expected_status}->{target_status} rejected for order {order_id}: "
                f"persisted state did not match"
            )
            raise NotFoundOrConflict("Order")

        mirror = ITEM_MIRROR.get(target_status)
        if mirror:
            sources, item_status = mirror
            await db.execute(
                update(OrderItem)
                .where(OrderItem.order_id == order_id, OrderItem.status.in_(sorted(sources)))
                .values(status=item_status, **item_mirror_values(target_status, now))
                .execution_options(synchronize_session=False)
            )

        db.add(OrderStatusHistory(
            order_id=order_id,
            from_status=expected_status,
            to_status=target_status,
            actor_kind=actor.kind,
            actor_id=actor.id,
            actor_name=actor.name,
            notes=notes or default_status_note(expected_status, target_status),
        ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Transition {expected_status}->{target_status} failed for order {order_id}: {e}")
        raise InternalError("Failed to update order status") from e

    order_transitions.labels(from_status=str(expected_status), to_status=str(target_status)).inc()
    logger.info(f"Order {order_id} moved {expected_status}->{target_status} by {actor.label()}")

    order = await load_order(db, business_id, order_id)
    if background_tasks is not None:
        schedule_order_event(
            background_tasks,
            OrderEvent.status_changed(order, expected_status, operation=operation),
        )
    return order
