import logging
from functools import wraps
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from laundryops.models.audit import Audit
from laundryops.utils.hashing import payload_hash

logger = logging.getLogger(__name__)


def audit_log(endpoint_name: str) -> Callable:

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            db: AsyncSession = kwargs.get("db")
            principal = kwargs.get("principal")

            if not db or not principal:
                return result

            try:
                payload = None
                for key in ["payload", "data", "body"]:
                    if key in kwargs:
                        payload = kwargs[key]
                        break

                if hasattr(payload, "model_dump"):
                    payload_dict = payload.model_dump(exclude_unset=True)
                elif isinstance(payload, dict):
                    payload_dict = payload
                else:
                    payload_dict = {}

                # path parameters belong to the audited request too
                for key in ("order_id", "item_id"):
                    if key in kwargs:
                        payload_dict = {**payload_dict, key: kwargs[key]}

                actor = principal.as_actor()
                audit_record = Audit(
                    business_id=principal.business_id,
                    actor_kind=actor.kind,
                    actor_id=actor.id,
                    endpoint=endpoint_name,
                    payload_hash=payload_hash(payload_dict),
                )
                db.add(audit_record)
                await db.commit()

            except Exception as e:
                await db.rollback()
                logger.error(f"Audit logging failed for {endpoint_name}: {e}")

            return result

        return wrapper
    return decorator
