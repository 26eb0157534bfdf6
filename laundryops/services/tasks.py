from celery import Celery
from laundryops.core.config import settings

celery_app = Celery(
    "worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BACKEND,
)
celery_app.conf.task_routes = {"laundryops.services.tasks.dispatch_customer_push": {"queue": "push"}}


class PushNotDelivered(Exception):
    pass


@celery_app.task(bind=True, max_retries=3)
def dispatch_customer_push(self, payload: dict):
    import asyncio
    from laundryops.services.push import send_push

    try:
        if not asyncio.run(send_push(payload)):
            raise PushNotDelivered(f"Push gateway rejected message for {payload.get('to')}")
    except Exception as e:
        retry_kwargs = {"countdown": 2 ** self.request.retries}
        raise self.retry(exc=e, **retry_kwargs)
