from tripcoin.celery_app import NOTIFICATION_TASK, celery_app
from celery.utils.log import get_task_logger
from tripcoin.config import settings
from tripcoin.metrics import NOTIF_RETRIED
from tripcoin.services.notification_providers import LogSink
from tripcoin.redis_client import sync_redis_client
import asyncio
import json

logger = get_task_logger(__name__)


def push_to_dlq(recipient_id: int, payload: dict, error: str):
    sync_redis_client.rpush(
        settings.NOTIFICATION_DLQ_KEY,
        json.dumps({"recipient_id": recipient_id, "payload": payload, "error": error}),
    )


@celery_app.task(name=NOTIFICATION_TASK, bind=True, retry_backoff=True, retry_backoff_max=600, retry_jitter=True, max_retries=3)
def deliver_notification_task(self, recipient_id: int, payload: dict):
    """Deliver one rendered notification; after the last retry the payload goes to the Redis DLQ."""
    try:
        return asyncio.run(LogSink().deliver(recipient_id, payload))
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            logger.error("Max retries exceeded for notification to %s; sending to DLQ", recipient_id)
            push_to_dlq(recipient_id, payload, repr(exc))
            raise
        NOTIF_RETRIED.inc()
        logger.exception("Error delivering notification: %s", exc)
        raise self.retry(exc=exc)
