import json
import logging
from laundryops.core import redis as redis_state
from laundryops.core.config import settings

logger = logging.getLogger(__name__)


def _client():
    if redis_state.redis is None:
        logger.warning("Redis unavailable, idempotency key ignored")
    return redis_state.redis


async def get_idempotent(key: str):
    if not key:
        return None
    redis = _client()
    if redis is None:
        return None
    v = await redis.get(f"idemp:{key}")
    return json.loads(v) if v else None


async def set_idempotent(key: str, value: dict):
    redis = _client()
    if redis is None:
        return
    await redis.set(f"idemp:{key}", json.dumps(value, default=str), ex=settings.IDEMPOTENCY_TTL)


def scoped_key(business_id: int, subject: str, key: str) -> str:
    return f"{business_id}:{subject}:{key}"
