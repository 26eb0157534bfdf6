"""Scoped reads of the order aggregate and derived totals"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from laundryops.core.auth_utils import filter_by_principal, check_not_found
from laundryops.models.order import Order, OrderItem
from laundryops.schemas.principal import Principal

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def order_query():
    return select(Order).options(selectinload(Order.items)).execution_options(populate_existing=True)


async def find_order(db: AsyncSession, business_id: int, order_id: int) -> Optional[Order]:
    res = await db.execute(
        order_query().where(Order.id == order_id, Order.business_id == business_id)
    )
    return res.scalars().first()


async def load_order(db: AsyncSession, business_id: int, order_id: int) -> Order:
    order = await find_order(db, business_id, order_id)
    check_not_found(order, "Order")
    return order


async def load_order_for(db: AsyncSession, principal: Principal, order_id: int) -> Order:
    res = await db.execute(filter_by_principal(order_query(), principal).where(Order.id == order_id))
    order = res.scalars().first()
    check_not_found(order, "Order")
    return order


async def recompute_total(db: AsyncSession, order_id: int) -> None:
    """Set total_amount to the sum of item subtotals inside the current transaction."""
    items_total = (
        select(func.coalesce(func.sum(OrderItem.subtotal), 0))
        .where(OrderItem.order_id == order_id)
        .scalar_subquery()
    )
    await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(total_amount=items_total)
        .execution_options(synchronize_session=False)
    )
