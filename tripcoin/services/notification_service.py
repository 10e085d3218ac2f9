from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from pathlib import Path
from typing import Dict, Optional
from tripcoin.config import settings
from tripcoin.metrics import NOTIF_FAILED, NOTIF_SENT
from tripcoin.services.notification_providers import NotificationSink, sink_for
import logging

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "notifications" / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    keep_trailing_newline=False,
)

# event names, one template per event: templates/<locale>/<event>.txt
TICKET_CONFIRMED = "ticket_confirmed"
TICKET_CANCELLED = "ticket_cancelled"
TICKET_REFUNDED = "ticket_refunded"
REQUEST_APPROVED = "request_approved"
REQUEST_REJECTED = "request_rejected"


class NotificationService:
    def __init__(self, sink: Optional[NotificationSink] = None, locale: str = None, enabled: bool = None):
        self.sink = sink or sink_for(settings.NOTIFICATION_SINK)
        self.locale = locale or settings.NOTIFICATION_LOCALE
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    def render(self, event: str, locale: str = None, context: Dict = None) -> str:
        ctx = context or {}
        locale = locale or self.locale
        # try locale-specific template, fallback to en
        for tpl in (f"{locale}/{event}.txt", f"en/{event}.txt"):
            try:
                return _env.get_template(tpl).render(**ctx).strip()
            except TemplateNotFound:
                continue
        raise LookupError("Template not found: %s" % event)

    async def publish(self, recipient_id: Optional[int], event: str, context: Dict = None) -> Optional[Dict]:
        """Best-effort delivery: failures are logged and counted, never raised."""
        if not self.enabled or recipient_id is None:
            return None
        sink_name = self.sink.__class__.__name__
        try:
            body = self.render(event, context=context)
            payload = {"event": event, "body": body, "data": context or {}}
            res = await self.sink.deliver(recipient_id, payload)
            NOTIF_SENT.labels(sink=sink_name).inc()
            return res
        except Exception:
            NOTIF_FAILED.labels(sink=sink_name).inc()
            logger.exception("Notification %s to user %s failed", event, recipient_id)
            return None


notification_service = NotificationService()
