import logging
from fastapi import Depends, HTTPException
from laundryops.core import redis as redis_state
from laundryops.core.config import settings
from laundryops.core.metrics import rate_limit_exceeded
from laundryops.core.security import get_principal
from laundryops.schemas.principal import Principal

logger = logging.getLogger(__name__)


async def check_rate_limit(principal: Principal):
    redis = redis_state.redis
    if redis is None:
        logger.warning(f"Redis unavailable, rate limit skipped for {principal.subject}")
        return
    key = f"rl:{principal.business_id}:{principal.role}:{principal.subject}"
    current = await redis.get(key)
    if current is None:
        await redis.set(key, "1", ex=settings.RATE_LIMIT_WINDOW)
        return
    count = int(current)
    if count >= settings.RATE_LIMIT:
        rate_limit_exceeded.labels(role=str(principal.role)).inc()
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    await redis.incr(key)


async def rate_limited(principal: Principal = Depends(get_principal)) -> None:
    await check_rate_limit(principal)
