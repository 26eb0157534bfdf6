"""Order number generation.

Numbers look like ``STORECODE-YYMMDD-NNNN`` and are unique per business. The
sequence continues from the highest number already issued for the same prefix,
so concurrent creations may pick the same candidate; ``create_with_order_number``
detects that and retries a bounded number of times.
"""
import asyncio
import logging
import random
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from laundryops.core.config import settings
from laundryops.core.errors import RetryExhausted
from laundryops.core.metrics import order_number_collisions
from laundryops.models.order import Order

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STORE_CODE = "STR"
SEQUENCE_WIDTH = 4
TAG_WIDTH = 3


def store_code(store_name: Optional[str]) -> str:
    letters = re.sub(r"[^a-zA-Z]", "", store_name or "")[:3].upper()
    return letters or DEFAULT_STORE_CODE


def order_number_prefix(store_name: Optional[str], today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"{store_code(store_name)}-{today:%y%m%d}-"


def format_order_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(order_number: str, prefix: str) -> Optional[int]:
    if not order_number.startswith(prefix):
        return None
    tail = order_number[len(prefix):]
    return int(tail) if tail.isdigit() else None


def generate_tag_number(order_number: str, item_index: int) -> str:
    return f"{order_number}-{item_index:0{TAG_WIDTH}d}"


async def next_order_number(
    db: AsyncSession,
    business_id: int,
    store_name: Optional[str],
    today: Optional[datetime] = None,
) -> str:
    prefix = order_number_prefix(store_name, today)
    res = await db.execute(
        select(Order.order_number)
        .where(
            Order.business_id == business_id,
            Order.order_number.startswith(prefix, autoescape=True),
        )
        .order_by(Order.order_number.desc())
        .limit(1)
    )
    last = res.scalars().first()
    last_sequence = parse_sequence(last, prefix) if last else None
    return format_order_number(prefix, (last_sequence or 0) + 1)


async def is_order_number_taken(db: AsyncSession, business_id: int, order_number: str) -> bool:
    res = await db.execute(
        select(Order.id).where(
            Order.business_id == business_id,
            Order.order_number == order_number,
        )
    )
    return res.first() is not None


async def _backoff(attempt: int, delay: float) -> None:
    await asyncio.sleep(delay * attempt + random.uniform(0, delay))


async def create_with_order_number(
    db: AsyncSession,
    business_id: int,
    store_name: Optional[str],
    persist: Callable[[str], Awaitable[T]],
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
) -> T:
    """Allocate a fresh order number and hand it to ``persist``.

    ``persist`` must write and commit everything that carries the number. A
    candidate that is already taken, or a unique violation raised while
    persisting, counts as a collision: the number is regenerated and the
    attempt repeated. Raises RetryExhausted after ``max_retries`` collisions.
    """
    max_retries = settings.ORDER_NUMBER_MAX_RETRIES if max_retries is None else max_retries
    delay = settings.ORDER_NUMBER_RETRY_DELAY if delay is None else delay

    for attempt in range(1, max_retries + 1):
        candidate = await next_order_number(db, business_id, store_name)

        if not await is_order_number_taken(db, business_id, candidate):
            try:
                return await persist(candidate)
            except IntegrityError:
                await db.rollback()

        order_number_collisions.inc()
        logger.warning(
            f"Order number collision on {candidate} for business {business_id} "
            f"(attempt {attempt}/{max_retries})"
        )
        if attempt < max_retries:
            await _backoff(attempt, delay)

    logger.error(f"Order number allocation exhausted after {max_retries} attempts for business {business_id}")
    raise RetryExhausted(max_retries)
