"""Workshop routing: outsource item subsets and reconcile their return.

Item moves here never touch the parent order's status.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import BackgroundTasks
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.enums import ItemStatus, OrderStatus, WorkshopAction, WorkshopTab, NotificationType
from laundryops.core.errors import ValidationError, NotFoundOrConflict, InternalError
from laundryops.models.order import Order, OrderItem
from laundryops.schemas.principal import Principal
from laundryops.schemas.workshop import WorkshopSend, WorkshopItemAction
from laundryops.services.notifications import OrderEvent, schedule_order_event
from laundryops.services.order_store import load_order
from laundryops.services.transitions import DEFAULT_WORKSHOP_PARTNER

logger = logging.getLogger(__name__)

# order statuses whose items may be sent out
SENDING_ORDER_STATUSES = (OrderStatus.IN_PROGRESS, OrderStatus.READY)

NOT_SENDABLE = (ItemStatus.AT_WORKSHOP, ItemStatus.COMPLETED)

# action -> (required item status, resulting status, note prefix, stamps returned time)
ITEM_ACTIONS = {
    WorkshopAction.MARK_RETURNED: (ItemStatus.AT_WORKSHOP, ItemStatus.WORKSHOP_RETURNED, "[Returned]", True),
    WorkshopAction.RETURN_TO_STORE: (ItemStatus.AT_WORKSHOP, ItemStatus.READY, "[Returned]", True),
    WorkshopAction.MARK_READY: (ItemStatus.WORKSHOP_RETURNED, ItemStatus.READY, "[QC Passed]", False),
}

TAB_STATUSES = {
    WorkshopTab.PROCESSING: (ItemStatus.AT_WORKSHOP,),
    WorkshopTab.READY: (ItemStatus.READY,),
    WorkshopTab.HISTORY: (ItemStatus.WORKSHOP_RETURNED, ItemStatus.COMPLETED),
}


def append_note(existing: Optional[str], prefix: str, note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    entry = f"{prefix} {note}"
    return f"{existing}\n{entry}" if existing else entry


async def send_to_workshop(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: WorkshopSend,
) -> Tuple[Order, List[int], int]:
    """Returns the reloaded order, the skipped item ids and the number of items sent."""
    order = await load_order(db, principal.business_id, order_id)
    if order.status not in SENDING_ORDER_STATUSES:
        raise ValidationError(f"Cannot send items of a {order.status} order to the workshop")

    requested = list(dict.fromkeys(payload.item_ids))
    res = await db.execute(
        select(OrderItem.id).where(
            OrderItem.order_id == order_id,
            OrderItem.id.in_(requested),
            OrderItem.status.notin_(NOT_SENDABLE),
        )
    )
    eligible = set(res.scalars().all())
    skipped = [item_id for item_id in requested if item_id not in eligible]

    updated = 0
    if eligible:
        try:
            result = await db.execute(
                update(OrderItem)
                .where(
                    OrderItem.order_id == order_id,
                    OrderItem.id.in_(sorted(eligible)),
                    OrderItem.status.notin_(NOT_SENDABLE),
                    select(Order.id)
                    .where(Order.id == order_id, Order.status.in_(SENDING_ORDER_STATUSES))
                    .exists(),
                )
                .values(
                    sent_to_workshop=True,
                    status=ItemStatus.AT_WORKSHOP,
                    workshop_partner_name=payload.partner_name or DEFAULT_WORKSHOP_PARTNER,
                    workshop_sent_at=datetime.now(timezone.utc),
                    workshop_returned_at=None,
                    workshop_notes=payload.notes,
                )
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            if updated == 0:
                # the order left a sending status or the items went out concurrently
                await db.rollback()
                raise NotFoundOrConflict("Order")
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Sending items of order {order_id} to workshop failed: {e}")
            raise InternalError("Failed to send items to workshop") from e

    if skipped:
        logger.info(f"Workshop send for order {order_id} skipped items {skipped}")
    logger.info(f"Sent {updated} item(s) of order {order_id} to {payload.partner_name or DEFAULT_WORKSHOP_PARTNER}")

    order = await load_order(db, principal.business_id, order_id)
    return order, skipped, updated


async def _load_item(db: AsyncSession, business_id: int, item_id: int) -> Tuple[OrderItem, Order]:
    res = await db.execute(
        select(OrderItem, Order)
        .join(Order, Order.id == OrderItem.order_id)
        .where(OrderItem.id == item_id, Order.business_id == business_id)
        .execution_options(populate_existing=True)
    )
    row = res.first()
    if row is None:
        raise NotFoundOrConflict("Item")
    return row[0], row[1]


async def apply_item_action(
    db: AsyncSession,
    principal: Principal,
    item_id: int,
    payload: WorkshopItemAction,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Tuple[OrderItem, Order]:
    required, target, prefix, stamps_return = ITEM_ACTIONS[payload.action]
    item, order = await _load_item(db, principal.business_id, item_id)
    if item.status != required:
        raise ValidationError(f"Item must be {required} to {payload.action}, found {item.status}")

    values = {
        "status": target,
        "workshop_notes": append_note(item.workshop_notes, prefix, payload.notes),
    }
    if stamps_return:
        values["workshop_returned_at"] = datetime.now(timezone.utc)

    try:
        result = await db.execute(
            update(OrderItem)
            .where(OrderItem.id == item_id, OrderItem.status == required)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise NotFoundOrConflict("Item")
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Workshop action {payload.action} on item {item_id} failed: {e}")
        raise InternalError("Failed to update workshop item") from e

    logger.info(f"Item {item_id} of order {order.id} moved {required}->{target} ({payload.action})")
    item, order = await _load_item(db, principal.business_id, item_id)

    if stamps_return and background_tasks is not None:
        schedule_order_event(background_tasks, OrderEvent.from_order(
            order,
            NotificationType.WORKSHOP_RETURNED,
            item_name=item.item_name,
            extra={"item_id": item.id, "tag_number": item.tag_number},
        ))
    return item, order


async def list_workshop_items(
    db: AsyncSession,
    principal: Principal,
    tab: WorkshopTab = WorkshopTab.PROCESSING,
    store_id: Optional[int] = None,
) -> List[Tuple[OrderItem, Order]]:
    q = (
        select(OrderItem, Order)
        .join(Order, Order.id == OrderItem.order_id)
        .where(
            Order.business_id == principal.business_id,
            OrderItem.sent_to_workshop.is_(True),
            OrderItem.status.in_(TAB_STATUSES[tab]),
        )
    )
    if store_id:
        q = q.where(Order.store_id == store_id)
    q = q.order_by(OrderItem.workshop_sent_at.desc(), OrderItem.id.desc())
    res = await db.execute(q)
    return [(item, order) for item, order in res.all()]


async def workshop_stats(db: AsyncSession, principal: Principal, store_id: Optional[int] = None) -> dict:
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    def base():
        q = (
            select(func.count(OrderItem.id))
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.business_id == principal.business_id, OrderItem.sent_to_workshop.is_(True))
        )
        return q.where(Order.store_id == store_id) if store_id else q

    at_workshop = (await db.execute(base().where(OrderItem.status == ItemStatus.AT_WORKSHOP))).scalar_one()
    returned = (await db.execute(base().where(OrderItem.status == ItemStatus.WORKSHOP_RETURNED))).scalar_one()
    returned_today = (await db.execute(base().where(OrderItem.workshop_returned_at >= today))).scalar_one()
    return {"at_workshop": at_workshop, "returned": returned, "returned_today": returned_today}
