"""Notification emission.

Notifications are side effects of order operations. They run after the triggering
transaction committed, in their own session and under a time bound, and a failure
here is logged and dropped, never surfaced to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.config import settings
from laundryops.core.enums import NotificationType, OrderStatus
from laundryops.core.metrics import notifications_emitted
from laundryops.db import session as db_session
from laundryops.models.directory import Customer
from laundryops.models.notification import Notification, UserPreferences
from laundryops.services import tasks

logger = logging.getLogger(__name__)

PREFERENCE_FLAGS = {
    NotificationType.ORDER_CREATED: "notify_new_orders",
    NotificationType.PAYMENT_RECEIVED: "notify_new_orders",
    NotificationType.NEW_CUSTOMER: "notify_new_orders",
    NotificationType.ORDER_COMPLETED: "notify_order_complete",
    NotificationType.ORDER_READY: "notify_order_complete",
    NotificationType.ORDER_PICKED_UP: "notify_order_complete",
    NotificationType.ORDER_DELIVERED: "notify_order_complete",
    NotificationType.WORKSHOP_RETURNED: "notify_order_complete",
    NotificationType.LOW_STOCK: "notify_low_stock",
    NotificationType.SYSTEM: "notify_marketing",
    NotificationType.REMINDER: "notify_marketing",
}

CUSTOMER_PUSH_MESSAGES = {
    OrderStatus.IN_PROGRESS: ("Items Received", "Your items for order #{number} have been received and processing has started."),
    OrderStatus.AT_WORKSHOP: ("At Workshop", "Your order #{number} has been sent to our expert workshop for special care."),
    OrderStatus.READY: ("Order Ready", "Your order #{number} is ready for pickup/delivery."),
    OrderStatus.OUT_FOR_DELIVERY: ("On the Way", "Your order #{number} is out for delivery."),
    OrderStatus.COMPLETED: ("Order Completed", "Your order #{number} has been completed. Thank you for choosing us!"),
    OrderStatus.CANCELLED: ("Order Cancelled", "Your order #{number} has been cancelled. Contact us for any questions."),
}


def is_notification_enabled(notification_type, preferences: Optional[UserPreferences]) -> bool:
    if preferences is None:
        return True
    flag = PREFERENCE_FLAGS.get(notification_type)
    if flag is None:
        logger.warning(f"Unknown notification type {notification_type}, defaulting to enabled")
        return True
    value = getattr(preferences, flag, None)
    return True if value is None else bool(value)


async def notify(
    db: AsyncSession,
    business_id: int,
    user_id: Optional[int],
    notification_type: NotificationType,
    title: str,
    message: str,
    metadata: Optional[dict] = None,
) -> Optional[Notification]:
    """Store one notification; ``user_id=None`` makes it business-wide.

    Returns None when the recipient opted out or the write failed.
    """
    try:
        if user_id is not None:
            res = await db.execute(select(UserPreferences).where(UserPreferences.user_id == user_id))
            if not is_notification_enabled(notification_type, res.scalars().first()):
                logger.info(f"Notification skipped: user {user_id} has disabled {notification_type}")
                notifications_emitted.labels(type=str(notification_type), outcome="skipped").inc()
                return None

        notification = Notification(
            business_id=business_id,
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=metadata,
        )
        db.add(notification)
        await db.commit()
        notifications_emitted.labels(type=str(notification_type), outcome="created").inc()
        logger.info(f"Notification created: [{notification_type}] {title}")
        return notification
    except Exception as e:
        await db.rollback()
        notifications_emitted.labels(type=str(notification_type), outcome="failed").inc()
        logger.error(f"Failed to create notification [{notification_type}] for business {business_id}: {e}")
        return None


@dataclass
class OrderEvent:
    business_id: int
    order_id: int
    order_number: str
    customer_id: int
    status: OrderStatus
    previous_status: Optional[OrderStatus] = None
    notification_type: Optional[NotificationType] = None
    total_amount: Decimal = Decimal("0")
    amount: Optional[Decimal] = None
    due_amount: Optional[Decimal] = None
    item_name: Optional[str] = None
    recipient_user_id: Optional[int] = None
    push_customer: bool = False
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_order(cls, order, notification_type: Optional[NotificationType], **kwargs) -> "OrderEvent":
        return cls(
            business_id=order.business_id,
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            status=order.status,
            notification_type=notification_type,
            total_amount=order.total_amount,
            **kwargs,
        )

    @classmethod
    def status_changed(cls, order, previous_status: OrderStatus, operation: str = "status_change") -> "OrderEvent":
        status = order.status
        if status == OrderStatus.IN_PROGRESS and previous_status == OrderStatus.PICKUP:
            notification_type = NotificationType.ORDER_PICKED_UP
        elif status == OrderStatus.READY:
            notification_type = NotificationType.ORDER_READY
        elif status == OrderStatus.COMPLETED:
            notification_type = (
                NotificationType.ORDER_DELIVERED if operation == "deliver" else NotificationType.ORDER_COMPLETED
            )
        elif status == OrderStatus.CANCELLED:
            notification_type = NotificationType.ORDER_CANCELLED
        else:
            notification_type = None
        return cls.from_order(
            order, notification_type, previous_status=previous_status, push_customer=True,
        )


def describe(event: OrderEvent, customer_name: str):
    """Title and message for the business-wide notification of an event."""
    number = event.order_number
    t = event.notification_type
    if t == NotificationType.ORDER_CREATED:
        return "New order received", f"Order #{number} created for {customer_name} - {event.total_amount:.2f}"
    if t == NotificationType.ORDER_PICKED_UP:
        return "Order picked up", f"Order #{number} for {customer_name} has been picked up"
    if t == NotificationType.ORDER_READY:
        return "Order ready", f"Order #{number} for {customer_name} is ready"
    if t == NotificationType.ORDER_DELIVERED:
        return "Order delivered", f"Order #{number} for {customer_name} has been delivered"
    if t == NotificationType.ORDER_COMPLETED:
        return "Order completed", f"Order #{number} for {customer_name} has been completed - {event.total_amount:.2f}"
    if t == NotificationType.ORDER_CANCELLED:
        return "Order cancelled", f"Order #{number} for {customer_name} has been cancelled"
    if t == NotificationType.PAYMENT_RECEIVED:
        if event.due_amount:
            return "Payment received", (
                f"Payment of {event.amount:.2f} received for Order #{number}. Remaining: {event.due_amount:.2f}"
            )
        return "Payment received", f"Full payment of {event.amount:.2f} received for Order #{number}"
    if t == NotificationType.WORKSHOP_RETURNED:
        return "Workshop item returned", f"{event.item_name} from Order #{number} is back from the workshop"
    return str(t), f"Order #{number}: {event.status}"


def queue_customer_push(event: OrderEvent, customer: Optional[Customer]) -> bool:
    template = CUSTOMER_PUSH_MESSAGES.get(event.status)
    if template is None or customer is None:
        return False
    if not customer.push_token or not customer.push_enabled:
        return False
    title, body = template
    try:
        tasks.dispatch_customer_push.delay({
            "to": customer.push_token,
            "title": title,
            "body": body.format(number=event.order_number),
            "data": {
                "order_id": event.order_id,
                "order_number": event.order_number,
                "status": str(event.status),
                "type": "ORDER_STATUS_UPDATE",
            },
        })
        return True
    except Exception as e:
        logger.error(f"Failed to queue customer push for order {event.order_id}: {e}")
        return False


async def _emit(db: AsyncSession, event: OrderEvent) -> None:
    res = await db.execute(
        select(Customer).where(Customer.id == event.customer_id, Customer.business_id == event.business_id)
    )
    customer = res.scalars().first()
    customer_name = customer.full_name if customer else "customer"

    if event.notification_type is not None:
        title, message = describe(event, customer_name)
        metadata = {
            "order_id": event.order_id,
            "order_number": event.order_number,
            "customer_id": event.customer_id,
            "status": str(event.status),
        }
        if event.previous_status is not None:
            metadata["previous_status"] = str(event.previous_status)
        if event.amount is not None:
            metadata["amount"] = str(event.amount)
        metadata.update(event.extra)
        await notify(
            db, event.business_id, event.recipient_user_id, event.notification_type, title, message, metadata,
        )

    if event.push_customer:
        queue_customer_push(event, customer)


async def emit_order_event(event: OrderEvent) -> None:
    try:
        async with db_session.AsyncSessionLocal() as db:
            await asyncio.wait_for(_emit(db, event), timeout=settings.NOTIFICATION_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error(f"Notification emission timed out for order {event.order_id}")
    except Exception as e:
        logger.error(f"Notification emission failed for order {event.order_id}: {e}")


def schedule_order_event(background_tasks: BackgroundTasks, event: OrderEvent) -> None:
    background_tasks.add_task(emit_order_event, event)
