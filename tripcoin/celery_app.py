from celery import Celery
from tripcoin.config import settings

NOTIFICATION_TASK = "tripcoin.notifications.tasks.deliver_notification_task"

celery_app = Celery(
    "tripcoin_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tripcoin.notifications.tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # delivery keeps its own queue so a slow sms gateway never delays other work
    task_routes={NOTIFICATION_TASK: {"queue": settings.NOTIFICATION_QUEUE}},
    # a payload is only acknowledged once delivered or parked in the DLQ
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # nobody reads delivery results after the retry window
    result_expires=3600,
)
