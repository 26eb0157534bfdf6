"""Payment reconciliation.

``paid_amount`` only ever grows through ``record_payment`` and never exceeds
``total_amount``; an overpayment is rejected rather than clamped.
"""
import logging
from typing import List, Optional, Tuple

from fastapi import BackgroundTasks
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.enums import OrderStatus, PaymentStatus, NotificationType
from laundryops.core.errors import ValidationError, NotFoundOrConflict, InternalError
from laundryops.core.metrics import payments_recorded
from laundryops.models.order import Order, Payment
from laundryops.schemas.payment import PaymentCreate
from laundryops.schemas.principal import Principal
from laundryops.services.notifications import OrderEvent, schedule_order_event
from laundryops.services.order_store import load_order, load_order_for, to_money

logger = logging.getLogger(__name__)


def derive_payment_status(paid_amount, total_amount) -> PaymentStatus:
    paid = to_money(paid_amount)
    total = to_money(total_amount)
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


async def record_payment(
    db: AsyncSession,
    principal: Principal,
    order_id: int,
    payload: PaymentCreate,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Order:
    order = await load_order(db, principal.business_id, order_id)
    if order.status == OrderStatus.CANCELLED:
        raise ValidationError("Cannot record a payment for a cancelled order")

    amount = to_money(payload.amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    previous_paid = to_money(order.paid_amount)
    total = to_money(order.total_amount)
    new_paid = previous_paid + amount
    if new_paid > total:
        raise ValidationError(
            f"Payment of {amount} exceeds the outstanding balance of {total - previous_paid}"
        )

    actor = principal.as_actor()
    try:
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.business_id == principal.business_id,
                Order.paid_amount == previous_paid,
            )
            .values(paid_amount=new_paid, payment_status=derive_payment_status(new_paid, total))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(f"Payment on order {order_id} rejected: paid amount changed concurrently")
            raise NotFoundOrConflict("Order")

        db.add(Payment(
            order_id=order_id,
            amount=amount,
            mode=payload.mode,
            reference=payload.reference,
            notes=payload.notes,
            actor_kind=actor.kind,
            actor_id=actor.id,
        ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Recording payment on order {order_id} failed: {e}")
        raise InternalError("Failed to record payment") from e

    payments_recorded.labels(mode=str(payload.mode)).inc()
    logger.info(f"Payment of {amount} ({payload.mode}) recorded on order {order_id}, paid {new_paid}/{total}")

    order = await load_order(db, principal.business_id, order_id)
    if background_tasks is not None:
        schedule_order_event(background_tasks, OrderEvent.from_order(
            order,
            NotificationType.PAYMENT_RECEIVED,
            amount=amount,
            due_amount=total - new_paid,
        ))
    return order


async def payment_summary(db: AsyncSession, principal: Principal, order_id: int) -> Tuple[Order, List[Payment]]:
    order = await load_order_for(db, principal, order_id)
    res = await db.execute(select(Payment).where(Payment.order_id == order_id).order_by(Payment.id))
    return order, list(res.scalars().all())
