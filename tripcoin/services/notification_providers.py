from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Abstract destination for booking notifications."""

    @abstractmethod
    async def deliver(self, recipient_id: int, payload: Dict) -> Dict:
        raise NotImplementedError()


class LogSink(NotificationSink):
    """Sink that only logs messages (useful for dev/testing)."""

    async def deliver(self, recipient_id: int, payload: Dict) -> Dict:
        logger.info("[LogSink] Notifying user %s event=%s", recipient_id, payload.get("event"))
        logger.debug("Notification body: %s", payload.get("body"))
        return {"status": "sent", "sink": "log"}


class CelerySink(NotificationSink):
    """Hands the payload to the celery worker; delivery is retried there."""

    def __init__(self, task=None):
        self._task = task

    @property
    def task(self):
        if self._task is None:
            from tripcoin.notifications.tasks import deliver_notification_task

            self._task = deliver_notification_task
        return self._task

    async def deliver(self, recipient_id: int, payload: Dict) -> Dict:
        result = self.task.delay(recipient_id, payload)
        return {"status": "queued", "sink": "celery", "task_id": getattr(result, "id", None)}


def sink_for(name: Optional[str]) -> NotificationSink:
    if name == "celery":
        return CelerySink()
    return LogSink()
