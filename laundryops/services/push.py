import httpx
import asyncio
import logging
from laundryops.core.config import settings
from laundryops.core.metrics import push_deliveries

logger = logging.getLogger(__name__)


async def send_push(payload: dict, retries: int | None = None) -> bool:
    """Post one push message to the gateway, retrying with exponential backoff."""
    if retries is None:
        retries = settings.WEBHOOK_RETRIES

    order_id = payload.get("data", {}).get("order_id")
    backoff = 1.0

    for attempt in range(1, retries + 1):
        try:
            async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT) as client:
                response = await client.post(settings.PUSH_GATEWAY_URL, json=payload)

                if 200 <= response.status_code < 300:
                    push_deliveries.labels(status="delivered").inc()
                    logger.info(f"Push delivery succeeded for order {order_id}")
                    return True
                else:
                    logger.warning(
                        f"Push delivery failed (attempt {attempt}/{retries}): "
                        f"Status {response.status_code} for order {order_id}"
                    )
        except httpx.TimeoutException:
            logger.warning(f"Push gateway timeout (attempt {attempt}/{retries}) for order {order_id}")
        except Exception as e:
            logger.warning(f"Push delivery error (attempt {attempt}/{retries}): {e} for order {order_id}")

        if attempt < retries:
            await asyncio.sleep(backoff)
            backoff *= 2.0

    push_deliveries.labels(status="failed").inc()
    logger.error(f"Push delivery failed after {retries} attempts for order {order_id}")
    return False
