import pytest

from tripcoin.services import notification_service as events
from tripcoin.services.notification_providers import CelerySink, LogSink, NotificationSink, sink_for
from tripcoin.services.notification_service import NotificationService


class BrokenSink(NotificationSink):
    async def deliver(self, recipient_id, payload):
        raise ConnectionError("sms gateway down")


class FakeTask:
    def __init__(self):
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)

        class _Result:
            id = "task-1"

        return _Result()


def test_render_falls_back_to_english():
    svc = NotificationService(sink=LogSink(), locale="lg", enabled=True)
    body = svc.render(events.TICKET_CONFIRMED, context={"ticket_number": "TKT-1", "total_passengers": 2, "departure": "09:00"})
    assert body == "Your ticket TKT-1 is confirmed for 2 passenger(s), departing 09:00."


def test_render_optional_reason():
    svc = NotificationService(sink=LogSink(), enabled=True)
    assert svc.render(events.REQUEST_REJECTED, context={"reference": "PAY-1"}) == "Your payment PAY-1 was rejected."
    body = svc.render(events.REQUEST_REJECTED, context={"reference": "PAY-1", "reason": "blurry"})
    assert body.endswith("Reason: blurry")


def test_unknown_event_has_no_template():
    svc = NotificationService(sink=LogSink(), enabled=True)
    with pytest.raises(LookupError):
        svc.render("trip_exploded")


async def test_publish_swallows_sink_failures():
    svc = NotificationService(sink=BrokenSink(), enabled=True)
    assert await svc.publish(7, events.TICKET_CANCELLED, {"ticket_number": "TKT-9"}) is None


async def test_publish_skips_when_disabled_or_anonymous():
    task = FakeTask()
    svc = NotificationService(sink=CelerySink(task=task), enabled=False)
    assert await svc.publish(7, events.TICKET_CANCELLED, {"ticket_number": "TKT-9"}) is None
    svc.enabled = True
    assert await svc.publish(None, events.TICKET_CANCELLED, {"ticket_number": "TKT-9"}) is None
    assert task.calls == []


async def test_celery_sink_enqueues_rendered_payload():
    task = FakeTask()
    svc = NotificationService(sink=CelerySink(task=task), enabled=True)
    res = await svc.publish(7, events.TICKET_REFUNDED, {"ticket_number": "TKT-9", "refunded_coins": 30000})
    assert res == {"status": "queued", "sink": "celery", "task_id": "task-1"}
    recipient, payload = task.calls[0]
    assert recipient == 7
    assert payload["event"] == "ticket_refunded"
    assert "30000 coins" in payload["body"]


def test_sink_for():
    assert isinstance(sink_for("celery"), CelerySink)
    assert isinstance(sink_for("log"), LogSink)
    assert isinstance(sink_for(None), LogSink)
